import logging
from enum import Enum
from typing import Dict, FrozenSet, Iterable, List, Tuple

from app.errors import CycleError
from app.models import FormSchema

logger = logging.getLogger(__name__)


class _Mark(Enum):
    WHITE = 0
    GREY = 1
    BLACK = 2


class DependencyGraph:
    """Parent/child relationships between derived fields and their inputs.

    Instances are immutable snapshots built by :func:`build_graph`; rebuild
    the graph whenever the schema changes.
    """

    def __init__(
        self,
        nodes: Iterable[str],
        derived: Iterable[str],
        parents: Dict[str, Tuple[str, ...]],
        order: Iterable[str],
        positions: Dict[str, int],
    ):
        self.nodes: Tuple[str, ...] = tuple(nodes)
        self.derived: FrozenSet[str] = frozenset(derived)
        self.order: Tuple[str, ...] = tuple(order)
        self._parents = dict(parents)
        self._positions = dict(positions)
        self._rank = {field_id: index for index, field_id in enumerate(self.order)}

        children: Dict[str, List[str]] = {node: [] for node in self.nodes}
        for child, child_parents in self._parents.items():
            for parent in child_parents:
                children[parent].append(child)
        self._children = {
            node: tuple(sorted(kids, key=self._position)) for node, kids in children.items()
        }

    def _position(self, field_id: str) -> int:
        return self._positions.get(field_id, len(self._positions))

    def __contains__(self, field_id: object) -> bool:
        return field_id in self._children

    def __len__(self) -> int:
        return len(self.nodes)

    def parents(self, field_id: str) -> Tuple[str, ...]:
        return self._parents.get(field_id, ())

    def children(self, field_id: str) -> Tuple[str, ...]:
        return self._children.get(field_id, ())

    def descendants(self, field_id: str) -> FrozenSet[str]:
        """Derived fields reachable from ``field_id`` (excluding itself)."""
        seen: set[str] = set()
        stack = list(self.children(field_id))
        while stack:
            current = stack.pop()
            if current in seen:
                continue
            seen.add(current)
            stack.extend(self.children(current))
        seen.discard(field_id)
        return frozenset(seen)

    def affected_by(self, field_id: str) -> Tuple[str, ...]:
        """Fields to recompute after ``field_id`` changes, in topological order."""
        affected = set(self.descendants(field_id))
        if field_id in self.derived:
            affected.add(field_id)
        return tuple(sorted(affected, key=self._rank.__getitem__))


def build_graph(schema: FormSchema) -> DependencyGraph:
    """Build the dependency graph for ``schema``.

    Raises :class:`CycleError` naming every field on the first cycle found,
    including a field that lists itself as a parent.
    """
    positions = {field.id: index for index, field in enumerate(schema.fields)}
    derived_ids = [field.id for field in schema.fields if field.is_derived]
    parents: Dict[str, Tuple[str, ...]] = {
        field.id: tuple(sorted(field.parent_ids, key=lambda pid: positions.get(pid, len(positions))))
        for field in schema.fields
        if field.is_derived
    }

    nodes: List[str] = []
    for field in schema.fields:
        referenced = field.is_derived or any(field.id in ids for ids in parents.values())
        if referenced:
            nodes.append(field.id)

    marks = {node: _Mark.WHITE for node in nodes}
    order: List[str] = []
    path: List[str] = []

    def visit(node: str) -> None:
        marks[node] = _Mark.GREY
        path.append(node)
        for parent in parents.get(node, ()):
            mark = marks[parent]
            if mark is _Mark.GREY:
                cycle = path[path.index(parent):]
                logger.warning("Dependency cycle among fields: %s", " -> ".join(cycle))
                raise CycleError(cycle)
            if mark is _Mark.WHITE:
                visit(parent)
        path.pop()
        marks[node] = _Mark.BLACK
        if node in parents:
            order.append(node)

    for field_id in derived_ids:
        if marks[field_id] is _Mark.WHITE:
            visit(field_id)

    logger.debug("Built dependency graph: %d nodes, %d derived", len(nodes), len(order))
    return DependencyGraph(
        nodes=nodes,
        derived=derived_ids,
        parents=parents,
        order=order,
        positions=positions,
    )
