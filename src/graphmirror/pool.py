"""
Object pools that keep visual nodes and edges alive between ticks.

Every pool owns two collections: the *active* mapping from identity key to
instance, and the *dormant* free lists of instances not used this tick. An
instance is in exactly one of them. Dormant instances stay attached to the
:class:`~graphmirror.scene.Surface` until :meth:`HandlePool.prune_dormant_from_display`
runs, so an identity that comes back within the same tick is reused without
touching the display at all.
"""

from collections import OrderedDict
from typing import Any, Callable, Dict, Generic, Hashable, List, Optional, TypeVar

from .graph import GraphNode, GraphOutput
from .scene import (
    GraphVisualNode,
    OutputVisualNode,
    Port,
    Surface,
    VisualEdge,
    graph_node_variant,
)

T = TypeVar("T")


class NodeNotFoundError(LookupError):
    """Raised when an identity has no active instance this tick."""

    pass


class HandlePool(Generic[T]):
    """Active/dormant pool of instances keyed by an opaque identity.

    Dormant instances are kept in one LIFO free list per *kind*. Allocation
    prefers the dormant instance last bound to the same key, then the most
    recently recycled one, and only creates a new instance when the free
    list of that kind is empty.

    Parameters
    ----------
    surface : Surface
        Where allocated instances are attached
    factory : callable, optional
        Builds a new instance for a kind; defaults to calling the kind
    """

    def __init__(self, surface: Surface, factory: Optional[Callable[[Any], T]] = None) -> None:
        self._surface = surface
        self._factory = factory
        self._active: Dict[Hashable, T] = {}
        self._active_kinds: Dict[Hashable, Any] = {}
        self._dormant: Dict[Any, "OrderedDict[Hashable, T]"] = {}
        self._created = 0

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(active={self.active_count}, "
            f"dormant={self.dormant_count}, created={self.created_count})"
        )

    @property
    def active_count(self) -> int:
        return len(self._active)

    @property
    def dormant_count(self) -> int:
        return sum(len(bucket) for bucket in self._dormant.values())

    @property
    def created_count(self) -> int:
        return self._created

    def _create(self, kind: Any) -> T:
        if self._factory is not None:
            return self._factory(kind)
        return kind()

    def _take_dormant(self, key: Hashable, kind: Any) -> Optional[T]:
        bucket = self._dormant.get(kind)
        if not bucket:
            return None
        if key in bucket:
            return bucket.pop(key)
        _, instance = bucket.popitem(last=True)
        instance.clear()
        return instance

    def alloc(self, key: Hashable, kind: Any = None) -> T:
        """Return the active instance for *key*, reusing or creating one."""
        instance = self._active.get(key)
        if instance is not None:
            return instance

        instance = self._take_dormant(key, kind)
        if instance is None:
            instance = self._create(kind)
            self._created += 1

        instance.key = key
        self._active[key] = instance
        self._active_kinds[key] = kind
        self._surface.add_element(instance)
        return instance

    def get_active(self, key: Hashable) -> T:
        """Return the active instance for *key*.

        Raises
        ------
        NodeNotFoundError
            If nothing was allocated for *key* this tick
        """
        try:
            return self._active[key]
        except KeyError:
            raise NodeNotFoundError(
                f"No active {type(self).__name__} instance for {key!r}"
            ) from None

    def try_get_active(self, key: Hashable) -> Optional[T]:
        return self._active.get(key)

    def is_active(self, key: Hashable) -> bool:
        return key in self._active

    def get_active_items(self) -> List[T]:
        """Active instances in allocation order."""
        return list(self._active.values())

    def recycle_all_active(self) -> None:
        """Move every active instance to its dormant free list."""
        for key, instance in self._active.items():
            instance.recycle()
            bucket = self._dormant.setdefault(self._active_kinds[key], OrderedDict())
            bucket.pop(key, None)
            bucket[key] = instance
        self._active.clear()
        self._active_kinds.clear()

    def prune_dormant_from_display(self) -> None:
        """Detach every dormant instance from the surface; keep it pooled."""
        for bucket in self._dormant.values():
            for instance in bucket.values():
                if instance.attached:
                    instance.detach()
                    self._surface.remove_element(instance)


class EdgePool(HandlePool[VisualEdge]):
    """Pool of edges keyed by the unordered pair of node identities they bridge."""

    def __init__(self, surface: Surface) -> None:
        super().__init__(surface, lambda kind: VisualEdge())

    @staticmethod
    def edge_key(port_a: Port, port_b: Port) -> frozenset:
        return frozenset((port_a.owner.key, port_b.owner.key))

    def alloc(self, port_a: Port, port_b: Port) -> VisualEdge:  # type: ignore[override]
        return super().alloc(self.edge_key(port_a, port_b))

    def get_active_edges(self) -> List[VisualEdge]:
        return self.get_active_items()


class OutputNodePool(HandlePool[OutputVisualNode]):
    """Pool of visual nodes, one per graph output."""

    def __init__(self, surface: Surface) -> None:
        super().__init__(surface, lambda kind: OutputVisualNode())

    @staticmethod
    def output_key(output: GraphOutput) -> Hashable:
        return ("output", output.handle)

    def alloc(self, output: GraphOutput) -> OutputVisualNode:  # type: ignore[override]
        return super().alloc(self.output_key(output))

    def update(self, output: GraphOutput, index: int) -> OutputVisualNode:
        node = self.get_active(output)
        node.update(output, index)
        return node

    def get_active(self, output: GraphOutput) -> OutputVisualNode:  # type: ignore[override]
        return super().get_active(self.output_key(output))

    def get_active_nodes(self) -> List[OutputVisualNode]:
        return self.get_active_items()


class GraphNodePool(HandlePool[GraphVisualNode]):
    """Pool of visual nodes keyed by graph node handle.

    Each node kind has its own free list, so a dormant script node is never
    handed out for a generic node.
    """

    def alloc(self, node: GraphNode) -> GraphVisualNode:  # type: ignore[override]
        return super().alloc(node.handle, graph_node_variant(node.kind))

    def update(self, context: Any, node: GraphNode) -> GraphVisualNode:
        visual = self.get_active(node)
        visual.update(context, node)
        return visual

    def get_active(self, node: GraphNode) -> GraphVisualNode:  # type: ignore[override]
        return super().get_active(node.handle)

    def try_get_active(self, node: GraphNode) -> Optional[GraphVisualNode]:  # type: ignore[override]
        return super().try_get_active(node.handle)

    def is_node_active(self, node: GraphNode) -> bool:
        return self.is_active(node.handle)

    def get_active_nodes(self) -> List[GraphVisualNode]:
        return self.get_active_items()
