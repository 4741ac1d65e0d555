"""
The synchronizer that mirrors a runtime graph onto a visual scene.

Each call to :meth:`GraphView.update` runs one tick:

1. recycle every active node and edge into its pool
2. allocate and refresh nodes, depth first from each root
3. wire ports and edges, coloring ports by weight
4. lay out root trees and their output groups (when auto layout is on)
5. refresh edge curves (when the view is watched or asked to)
6. detach whatever was not reused from the surface

Example
-------
>>> from graphmirror import GraphView, RuntimeGraph, UpdateContext
>>> g = RuntimeGraph('demo')
>>> clip = g.add_node('Clip')
>>> out = g.add_output('Animation', clip)
>>> view = GraphView()
>>> view.update(UpdateContext(graph=g))
>>> len(view.surface.edges())
1
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple
import warnings

from .graph import INVALID_HANDLE, GraphNode, Handle
from .groups import OutputGroup
from .pool import EdgePool, GraphNodePool, OutputNodePool
from .scene import (
    COLUMN_STEP,
    DEFAULT_MAX_DEPTH,
    VERTICAL_SPACE,
    GraphTooDeepError,
    GraphVisualNode,
    Point,
    Port,
    ScheduledTask,
    Surface,
    VisualEdge,
    port_color,
)


class CycleWarning(UserWarning):
    """Warning raised when part of the graph can only be reached through a cycle."""

    pass


@dataclass
class UpdateContext:
    """Per-tick input of :meth:`GraphView.update`.

    Attributes
    ----------
    graph : RuntimeGraph or None
        Snapshot to mirror; None or an invalid graph empties the view
    auto_layout : bool
        Recompute positions this tick (default: True)
    keep_updating_edges : bool
        Refresh edge curves even while the view is not hovered (default: True)
    show_progress : bool
        Passed through to graph nodes for the rendering layer (default: True)
    node_extra_labels : mapping of Handle to str, optional
        Extra text shown on the matching graph nodes
    """

    graph: Any = None
    auto_layout: bool = True
    keep_updating_edges: bool = True
    show_progress: bool = True
    node_extra_labels: Optional[Mapping[Handle, str]] = None


def _graph_handle(graph: Any) -> Handle:
    if graph is None:
        return INVALID_HANDLE
    return graph.handle


class GraphView:
    """Keeps a :class:`~graphmirror.scene.Surface` in sync with a runtime graph.

    Parameters
    ----------
    surface : Surface, optional
        Surface to attach visual objects to (a new one by default)
    origin : tuple of (float, float)
        Position of the first root node (default: (0, 0))
    max_depth : int
        Deepest node chain walked before giving up with GraphTooDeepError
    """

    def __init__(
        self,
        surface: Optional[Surface] = None,
        origin: Point = (0.0, 0.0),
        max_depth: int = DEFAULT_MAX_DEPTH,
    ) -> None:
        self.surface = surface if surface is not None else Surface()
        self.origin = origin
        self.max_depth = max_depth

        self._graph: Any = None
        self._graph_handle = INVALID_HANDLE
        self._is_view_focused = False
        self._nodes_movable = True
        self._frame_all_task: Optional[ScheduledTask] = None

        self.edge_pool = EdgePool(self.surface)
        self.output_node_pool = OutputNodePool(self.surface)
        self.graph_node_pool = GraphNodePool(self.surface)

        self._output_groups: Dict[Handle, OutputGroup] = {}
        self._dormant_output_groups: List[OutputGroup] = []
        self._root_nodes: List[GraphNode] = []
        self._tree_parents: Dict[Handle, GraphVisualNode] = {}

    def __repr__(self) -> str:
        return (
            f"GraphView(outputs={self.output_node_pool.active_count}, "
            f"nodes={self.graph_node_pool.active_count}, edges={self.edge_pool.active_count})"
        )

    @property
    def graph(self) -> Any:
        return self._graph

    @property
    def root_nodes(self) -> Tuple[GraphNode, ...]:
        """Official roots of the last tick, in the order the graph reported them."""
        return tuple(self._root_nodes)

    @property
    def output_groups(self) -> Dict[Handle, OutputGroup]:
        return dict(self._output_groups)

    @property
    def is_view_focused(self) -> bool:
        return self._is_view_focused

    # -- update ----------------------------------------------------------

    def update(self, context: UpdateContext) -> None:
        """Mirror ``context.graph`` onto the surface.

        If the tick fails, every node and edge is detached and the previous
        graph identity is restored, so the next successful tick on the same
        graph is still treated as a graph change.
        """
        graph = context.graph
        graph_handle = _graph_handle(graph)
        graph_changed = graph_handle != self._graph_handle
        previous = (self._graph, self._graph_handle)
        self._graph = graph
        self._graph_handle = graph_handle

        self._recycle_all_nodes_and_edges()
        try:
            if graph is None or not graph.is_valid():
                self._root_nodes.clear()
                self._recycle_output_groups()
                return

            self._alloc_and_setup_all_nodes(context, graph_changed)
            self._connect_nodes()
            self._repair_parent_chains(graph_changed)
            if context.auto_layout:
                self._calculate_layout()

            self._update_active_edges(context)
        except Exception:
            self._graph, self._graph_handle = previous
            self._recycle_all_nodes_and_edges()
            self._root_nodes.clear()
            self._recycle_output_groups()
            raise
        finally:
            self._remove_unused_elements_from_view()

        if graph_changed:
            self._schedule_frame_all()

    def _recycle_all_nodes_and_edges(self) -> None:
        self.edge_pool.recycle_all_active()
        self.output_node_pool.recycle_all_active()
        self.graph_node_pool.recycle_all_active()

    # -- allocation ------------------------------------------------------

    def _alloc_and_setup_all_nodes(self, context: UpdateContext, graph_changed: bool) -> None:
        graph = self._graph
        outputs = [graph.get_output(i) for i in range(graph.output_count)]
        for i, output in enumerate(outputs):
            self.output_node_pool.alloc(output).set_movable(self._nodes_movable)
            self.output_node_pool.update(output, i)

        self._root_nodes.clear()
        self._tree_parents.clear()
        root_count = graph.root_count

        # Every node has a parent node: there is at least one cycle and no
        # entry point, so each output source stands in for a root. These
        # entries are never laid out.
        if root_count == 0 and graph.node_count > 0:
            for output in outputs:
                self._alloc_and_setup_node_tree(context, output.source, True)
            if graph_changed:
                warnings.warn(
                    f"Every node of graph '{graph.name}' has a parent node, so the graph "
                    "contains at least one cycle. Nodes that only feed each other and "
                    "reach no output cannot be displayed. Refresh manually with auto "
                    "layout disabled and drag nodes apart to inspect the displayed cycle.",
                    CycleWarning,
                    stacklevel=3,
                )
            return

        for i in range(root_count):
            root = graph.get_root(i)
            self._root_nodes.append(root)
            self._alloc_and_setup_node_tree(context, root, True, record_parents=True)

        # Outputs fed by a cycle that no root reaches
        orphans = [
            output
            for output in outputs
            if output.has_valid_source()
            and not self.graph_node_pool.is_node_active(output.source)
        ]
        for output in orphans:
            self._alloc_and_setup_node_tree(context, output.source, True)
        if orphans and graph_changed:
            names = ", ".join(repr(o.name) for o in orphans)
            warnings.warn(
                f"Output(s) {names} of graph '{graph.name}' are fed by a cycle that no "
                "root node reaches; those nodes are shown but not laid out.",
                CycleWarning,
                stacklevel=3,
            )

    def _alloc_and_setup_node_tree(
        self,
        context: UpdateContext,
        entry: GraphNode,
        is_root: bool,
        record_parents: bool = False,
    ) -> None:
        """Allocate *entry* and everything it reaches, depth first.

        With *record_parents*, the node through which each node was first
        reached is kept for :meth:`_repair_parent_chains`.
        """
        if not entry.is_valid():
            return

        entry_node = self._setup_node(context, entry, is_root)
        stack: List[Tuple[GraphNode, int, GraphVisualNode]] = []
        self._push_inputs(stack, entry, 1, entry_node)
        while stack:
            node, depth, parent = stack.pop()
            if not node.is_valid() or self.graph_node_pool.is_node_active(node):
                continue
            if depth > self.max_depth:
                raise GraphTooDeepError(
                    f"Graph '{self._graph.name}' is deeper than {self.max_depth} nodes"
                )
            visual = self._setup_node(context, node, False)
            if record_parents:
                self._tree_parents[node.handle] = parent
            self._push_inputs(stack, node, depth + 1, visual)

    def _setup_node(
        self, context: UpdateContext, node: GraphNode, is_root: bool
    ) -> GraphVisualNode:
        visual = self.graph_node_pool.alloc(node)
        visual.is_root = is_root
        visual.set_movable(self._nodes_movable)
        return self.graph_node_pool.update(context, node)

    @staticmethod
    def _push_inputs(
        stack: List[Tuple[GraphNode, int, GraphVisualNode]],
        node: GraphNode,
        depth: int,
        parent: GraphVisualNode,
    ) -> None:
        # Reversed so inputs are visited in index order
        for i in reversed(range(node.input_count)):
            stack.append((node.get_input(i), depth, parent))

    # -- connection ------------------------------------------------------

    def _connect_nodes(self) -> None:
        for parent_node in self.output_node_pool.get_active_nodes():
            output = parent_node.output
            child = output.source
            if not child.is_valid():
                continue

            child_node = self.graph_node_pool.get_active(child)
            child_port = child_node.get_output_port(output.source_output_port)
            edge = self.edge_pool.alloc(parent_node.input_port, child_port)
            self._connect(edge, parent_node.input_port, child_port, output.weight)

        for parent_node in self.graph_node_pool.get_active_nodes():
            parent = parent_node.graph_node
            for i in range(parent.input_count):
                child = parent.get_input(i)
                if not child.is_valid():
                    continue

                child_node = self.graph_node_pool.get_active(child)
                child_node.parent_node = parent_node
                parent_node.set_input_node(i, child_node)

                child_port = child_node.find_output_port(parent_node)
                parent_port = parent_node.get_input_port(i)
                edge = self.edge_pool.alloc(parent_port, child_port)
                self._connect(edge, parent_port, child_port, parent.get_input_weight(i))

        for node in self.graph_node_pool.get_active_nodes():
            node.trim_output_ports()

    def _repair_parent_chains(self, graph_changed: bool) -> None:
        """Point looping parent chains back at the node that first reached them.

        The connection pass keeps the last parent of each node, so a cycle
        below a root can leave nodes whose parent chain loops instead of
        ending on the root. Those nodes are moved under the parent they were
        reached through, which is always on a path from a root.
        """
        repaired: List[GraphVisualNode] = []
        changed = True
        while changed:
            changed = False
            for node in self.graph_node_pool.get_active_nodes():
                tree_parent = self._tree_parents.get(node.key)
                if tree_parent is None or node.parent_node is tree_parent:
                    continue
                if node.find_root_graph_visual_node() is None:
                    node.parent_node = tree_parent
                    repaired.append(node)
                    changed = True

        if repaired and graph_changed:
            names = ", ".join(f"'{n.title}' ({n.graph_node.handle})" for n in repaired)
            warnings.warn(
                f"Node(s) {names} of graph '{self._graph.name}' feed a cycle below a "
                "root node; they are laid out under the node that first reached them.",
                CycleWarning,
                stacklevel=3,
            )

    @staticmethod
    def _connect(edge: VisualEdge, input_port: Port, output_port: Port, weight: float) -> None:
        color = port_color(weight)
        input_port.color = color
        output_port.color = color
        edge.bind(input_port, output_port)

    # -- layout ----------------------------------------------------------

    def _calculate_layout(self) -> None:
        self._recycle_output_groups()
        self._collect_output_groups()

        x, y = self.origin
        for root in self._root_nodes:
            root_node = self.graph_node_pool.get_active(root)
            _, tree_size = root_node.calculate_layout((x, y), self.max_depth)

            # The tree must be at least as tall as its output group
            group = self._output_groups[root.handle]
            tree_height = max(tree_size[1], group.get_outputs_vertical_size())

            outputs_bottom = group.layout_output_nodes((x + COLUMN_STEP, y + tree_height / 2))
            y = max(y + tree_height, outputs_bottom) + VERTICAL_SPACE

        no_source_group = self._output_groups.get(INVALID_HANDLE)
        if no_source_group is not None:
            size = no_source_group.get_outputs_vertical_size()
            no_source_group.layout_output_nodes((x + COLUMN_STEP, y + size / 2))

    def _recycle_output_groups(self) -> None:
        for group in self._output_groups.values():
            group.clear()
            self._dormant_output_groups.append(group)
        self._output_groups.clear()

    def _alloc_output_group(self) -> OutputGroup:
        if self._dormant_output_groups:
            return self._dormant_output_groups.pop()
        return OutputGroup()

    def _collect_output_groups(self) -> None:
        for root in self._root_nodes:
            if root.handle not in self._output_groups:
                group = self._alloc_output_group()
                group.source_node = self.graph_node_pool.get_active(root)
                self._output_groups[root.handle] = group

        graph = self._graph
        for i in range(graph.output_count):
            output = graph.get_output(i)
            source = output.source
            key = source.handle if source.is_valid() else INVALID_HANDLE

            group = self._output_groups.get(key)
            if group is None:
                # A new group here means the source is not a root node
                group = self._alloc_output_group()
                source_node = self.graph_node_pool.try_get_active(source) if source.is_valid() else None
                group.source_node = source_node
                self._output_groups[key] = group

                root_node = source_node.find_root_graph_visual_node() if source_node else None
                if root_node is not None:
                    root_group = self._output_groups.get(root_node.graph_node.handle)
                    if root_group is not None:
                        root_group.child_groups.append(group)

            group.output_nodes.append(self.output_node_pool.get_active(output))

    # -- edges -----------------------------------------------------------

    def _update_active_edges(self, context: UpdateContext) -> None:
        if not (self._is_view_focused or context.keep_updating_edges):
            return

        for edge in self.edge_pool.get_active_edges():
            edge.update_geometry()

    def on_pointer_enter(self) -> None:
        self._is_view_focused = True

    def on_pointer_leave(self) -> None:
        self._is_view_focused = False

    # -- pruning and framing ---------------------------------------------

    def _remove_unused_elements_from_view(self) -> None:
        self.edge_pool.prune_dormant_from_display()
        self.output_node_pool.prune_dormant_from_display()
        self.graph_node_pool.prune_dormant_from_display()

    def _schedule_frame_all(self) -> None:
        if self._frame_all_task is not None:
            self._frame_all_task.cancel()
        self._frame_all_task = self.surface.schedule(self.frame_all)

    def frame_all(self) -> None:
        """Fit the surface viewport around every visible node."""
        self.surface.frame_all()

    # -- node management -------------------------------------------------

    def set_nodes_movability(self, movable: bool) -> None:
        """Set the movable flag of every active node and of nodes allocated later."""
        self._nodes_movable = movable
        for output_node in self.output_node_pool.get_active_nodes():
            output_node.set_movable(movable)

        for graph_node in self.graph_node_pool.get_active_nodes():
            graph_node.set_movable(movable)
