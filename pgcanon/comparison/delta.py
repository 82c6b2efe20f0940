from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Set, Tuple

from pgcanon.core.models import DatabaseObject

# ребро без идентификаторов вершин: (identity источника, identity цели, связь)
EdgeKey = Tuple[Tuple[str, str, str, str], Tuple[str, str, str, str], str]


def _object_label(obj: DatabaseObject) -> str:
    _, schema, parent, name = obj.identity()
    qualified = f"{schema}.{parent}.{name}" if parent else f"{schema}.{name}"
    return f"{obj.type.value} {qualified}"


def _edge_label(edge: EdgeKey) -> str:
    src, dst, relation = edge
    src_name = ".".join(p for p in src[1:] if p)
    dst_name = ".".join(p for p in dst[1:] if p)
    return f"{src[0]} {src_name} -[{relation}]-> {dst[0]} {dst_name}"


@dataclass
class ModifiedObject:
    """
    Объект с зафиксированными изменёнными атрибутами.
    """
    before: DatabaseObject
    after: DatabaseObject
    changed_fields: Set[str]

    def to_dict(self) -> Dict[str, Any]:
        before = self.before.describe()
        after = self.after.describe()
        return {
            "object": _object_label(self.before),
            "changes": {
                f: {"before": before.get(f), "after": after.get(f)}
                for f in sorted(self.changed_fields)
            },
        }


@dataclass
class Delta:
    """
    Различия двух схем: Δ = (O_added, O_removed, O_modified, E_added, E_removed).
    Сторона A — входная схема, сторона B — ожидаемая.
    """

    # объекты
    objects_added: Set[DatabaseObject] = field(default_factory=set)
    objects_removed: Set[DatabaseObject] = field(default_factory=set)
    objects_modified: List[ModifiedObject] = field(default_factory=list)

    # рёбра
    edges_added: Set[EdgeKey] = field(default_factory=set)
    edges_removed: Set[EdgeKey] = field(default_factory=set)

    # ==========
    # ВСПОМОГАТЕЛЬНОЕ
    # ==========

    def modified_by_type(self, obj_type) -> List[ModifiedObject]:
        return [
            m for m in self.objects_modified
            if m.before.type == obj_type
        ]

    def is_empty(self) -> bool:
        return not any((
            self.objects_added,
            self.objects_removed,
            self.objects_modified,
            self.edges_added,
            self.edges_removed,
        ))

    def summary(self) -> Dict[str, int]:
        return {
            "objects_added": len(self.objects_added),
            "objects_removed": len(self.objects_removed),
            "objects_modified": len(self.objects_modified),
            "edges_added": len(self.edges_added),
            "edges_removed": len(self.edges_removed),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "summary": self.summary(),
            "objects_added": sorted(_object_label(o) for o in self.objects_added),
            "objects_removed": sorted(_object_label(o) for o in self.objects_removed),
            "objects_modified": [
                m.to_dict() for m in sorted(self.objects_modified, key=lambda m: _object_label(m.before))
            ],
            "edges_added": sorted(_edge_label(e) for e in self.edges_added),
            "edges_removed": sorted(_edge_label(e) for e in self.edges_removed),
        }
