# pgcanon/graph/schema_graph.py

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

from pgcanon.core.exceptions import CircularDependencyError, GraphBuildingError
from pgcanon.core.models import DatabaseObject, RelationType

logger = logging.getLogger(__name__)

# рёбра, которые задают порядок создания объектов
ORDERING_RELATIONS = {
    RelationType.CONTAINS,
    RelationType.REFERENCES,
    RelationType.DEPENDS_ON,
    RelationType.USES,
    RelationType.TRIGGERS,
}


@dataclass(frozen=True)
class Edge:
    src: int
    dst: int
    relation: RelationType


class SchemaGraph:
    """
    Ориентированный помеченный граф объектов схемы БД.

    Ребро src -> dst означает, что src зависит от dst
    (колонка -> таблица, внешний ключ -> таблица, представление -> таблица).
    """

    def __init__(self, name: str = "") -> None:
        self.name = name
        self._next_id: int = 1
        self.vertices: Dict[int, DatabaseObject] = {}
        self.edges: Set[Edge] = set()

    # ==========
    # ВЕРШИНЫ
    # ==========

    def add_vertex(self, obj: DatabaseObject) -> int:
        obj.id = self._next_id
        self.vertices[self._next_id] = obj
        self._next_id += 1
        return obj.id

    def find(self, identity: tuple) -> Optional[DatabaseObject]:
        for obj in self.vertices.values():
            if obj.identity() == identity:
                return obj
        return None

    # ==========
    # РЁБРА
    # ==========

    def add_edge(self, src_id: int, dst_id: int, relation: RelationType) -> None:
        for obj_id in (src_id, dst_id):
            if obj_id not in self.vertices:
                raise GraphBuildingError(f"Вершина {obj_id} не добавлена в граф {self.name or '-'}")
        if src_id == dst_id:
            return

        self.edges.add(Edge(src=src_id, dst=dst_id, relation=relation))

    def get_outgoing(
        self,
        obj: DatabaseObject,
        *,
        relation: Optional[RelationType] = None,
    ) -> Set[Edge]:
        return {
            e for e in self.edges
            if e.src == obj.id and (relation is None or e.relation == relation)
        }

    def get_incoming(
        self,
        obj: DatabaseObject,
        *,
        relation: Optional[RelationType] = None,
    ) -> Set[Edge]:
        return {
            e for e in self.edges
            if e.dst == obj.id and (relation is None or e.relation == relation)
        }

    # ==========
    # ЗАВИСИМОСТИ
    # ==========

    def get_dependencies(
        self,
        obj: DatabaseObject,
        *,
        relations: Optional[Set[RelationType]] = None,
    ) -> Set[DatabaseObject]:
        result = set()
        for e in self.get_outgoing(obj):
            if relations is None or e.relation in relations:
                target = self.vertices.get(e.dst)
                if target:
                    result.add(target)
        return result

    def get_dependents(
        self,
        obj: DatabaseObject,
        *,
        relations: Optional[Set[RelationType]] = None,
    ) -> Set[DatabaseObject]:
        result = set()
        for e in self.get_incoming(obj):
            if relations is None or e.relation in relations:
                source = self.vertices.get(e.src)
                if source:
                    result.add(source)
        return result

    def get_container(self, obj: DatabaseObject) -> DatabaseObject:
        """Объект верхнего уровня, которому принадлежит obj (колонка -> таблица)."""
        current = obj
        seen: Set[int] = set()
        while current.id not in seen:
            seen.add(current.id)
            parents = [
                self.vertices[e.dst] for e in self.get_outgoing(current, relation=RelationType.CONTAINS)
            ]
            if not parents:
                return current
            current = parents[0]
        return current

    def get_children(self, obj: DatabaseObject) -> Set[DatabaseObject]:
        return self.get_dependents(obj, relations={RelationType.CONTAINS})

    def lifted_dependencies(
        self,
        obj: DatabaseObject,
        *,
        relations: Optional[Set[RelationType]] = None,
    ) -> Set[DatabaseObject]:
        """
        Зависимости объекта и всех его вложенных объектов,
        поднятые до объектов верхнего уровня.
        """
        relations = relations if relations is not None else ORDERING_RELATIONS - {RelationType.CONTAINS}
        members = [obj] + list(self.get_children(obj))

        result: Set[DatabaseObject] = set()
        for member in members:
            for dep in self.get_dependencies(member, relations=relations):
                top = self.get_container(dep)
                if top.id != obj.id:
                    result.add(top)
        return result

    # ==========
    # ПОРЯДОК
    # ==========

    def topological_order(
        self,
        objects: Iterable[DatabaseObject],
        key: Optional[Callable[[DatabaseObject], Any]] = None,
        strict: bool = False,
    ) -> List[DatabaseObject]:
        """
        Порядок Кана для заданного подмножества объектов верхнего уровня:
        зависимости раньше зависимых; среди готовых — по key.
        Цикл разрывается объектом с наименьшим key (с предупреждением),
        при strict=True вызывает CircularDependencyError.
        """
        key = key or (lambda o: (o.schema, o.name))
        pending = {o.id: o for o in objects}

        deps: Dict[int, Set[int]] = {}
        for obj_id, obj in pending.items():
            deps[obj_id] = {d.id for d in self.lifted_dependencies(obj) if d.id in pending}

        ordered: List[DatabaseObject] = []
        done: Set[int] = set()

        while pending:
            ready = [o for oid, o in pending.items() if deps[oid] <= done]
            if not ready:
                if strict:
                    raise CircularDependencyError(sorted(o.qualified_name for o in pending.values()))
                victim = min(pending.values(), key=key)
                logger.warning(
                    "Циклическая зависимость: %s; порядок разорван на %s",
                    ", ".join(sorted(o.qualified_name for o in pending.values())),
                    victim.qualified_name,
                )
                ready = [victim]

            nxt = min(ready, key=key)
            ordered.append(nxt)
            done.add(nxt.id)
            del pending[nxt.id]

        return ordered
