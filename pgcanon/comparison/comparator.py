"""
comparator.py

Сравнение двух графов схем и построение дельты Δ.

Δ = (O_added, O_removed, O_modified, E_added, E_removed)

Вершины сопоставляются по identity() = (тип, схема, родитель, имя),
а не по идентификаторам вершин: у графов разных файлов они свои.
"""

from __future__ import annotations

import logging
from typing import Dict, Set, Tuple

from pgcanon.comparison.delta import Delta, EdgeKey, ModifiedObject
from pgcanon.core.models import DatabaseObject
from pgcanon.graph.schema_graph import SchemaGraph

logger = logging.getLogger(__name__)


class GraphComparator:
    """
    Сравнивает два графа SchemaGraph и строит Δ.
    """

    def compare(self, graph_a: SchemaGraph, graph_b: SchemaGraph) -> Delta:
        # --- Индексация вершин ---
        objs_a: Dict[Tuple[str, str, str, str], DatabaseObject] = {
            o.identity(): o for o in graph_a.vertices.values()
        }
        objs_b: Dict[Tuple[str, str, str, str], DatabaseObject] = {
            o.identity(): o for o in graph_b.vertices.values()
        }

        keys_a = set(objs_a.keys())
        keys_b = set(objs_b.keys())

        # --- Δ объекты ---
        objects_added: Set[DatabaseObject] = {objs_b[k] for k in keys_b - keys_a}
        objects_removed: Set[DatabaseObject] = {objs_a[k] for k in keys_a - keys_b}

        objects_modified = []

        # --- MODIFIED ---
        for k in sorted(keys_a & keys_b):
            obj_a = objs_a[k]
            obj_b = objs_b[k]

            changed_fields = self._diff_attributes(obj_a, obj_b)
            if changed_fields:
                objects_modified.append(
                    ModifiedObject(
                        before=obj_a,
                        after=obj_b,
                        changed_fields=changed_fields,
                    )
                )

        # --- Рёбра ---
        edges_a = self._edge_keys(graph_a)
        edges_b = self._edge_keys(graph_b)

        delta = Delta(
            objects_added=objects_added,
            objects_removed=objects_removed,
            objects_modified=objects_modified,
            edges_added=edges_b - edges_a,
            edges_removed=edges_a - edges_b,
        )
        logger.debug("Сравнение %s / %s: %s", graph_a.name, graph_b.name, delta.summary())
        return delta

    @staticmethod
    def _edge_keys(graph: SchemaGraph) -> Set[EdgeKey]:
        keys: Set[EdgeKey] = set()
        for e in graph.edges:
            src = graph.vertices[e.src]
            dst = graph.vertices[e.dst]
            keys.add((src.identity(), dst.identity(), e.relation.value))
        return keys

    @staticmethod
    def _diff_attributes(
        obj_a: DatabaseObject,
        obj_b: DatabaseObject,
    ) -> Set[str]:
        """
        Определяет изменённые атрибуты объекта: attrs(o_A) ≠ attrs(o_B).
        """
        changed: Set[str] = set()

        attrs_a = obj_a.describe()
        attrs_b = obj_b.describe()

        for key in set(attrs_a.keys()) | set(attrs_b.keys()):
            if attrs_a.get(key) != attrs_b.get(key):
                changed.add(key)

        return changed
