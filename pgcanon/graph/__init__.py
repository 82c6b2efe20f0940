from .schema_graph import SchemaGraph, Edge, ORDERING_RELATIONS
from .builder import GraphBuilder, build_graph

__all__ = [
    "SchemaGraph",
    "Edge",
    "ORDERING_RELATIONS",
    "GraphBuilder",
    "build_graph",
]
