"""
Visual scene objects for graphmirror.

This module provides:
- Ports, edges and the visual node variants mirrored from a runtime graph
- The weight to port color mapping
- The bottom-up subtree layout of graph nodes
- :class:`Surface`, the hand-off point to whatever toolkit draws the scene

Visual objects are never created here on demand; the pools in
:mod:`graphmirror.pool` own their lifetime and recycle them between ticks.
"""

from enum import Enum, IntFlag
import math
from typing import Any, Callable, Dict, Iterator, List, Optional, Set, Tuple, Type

from .graph import NULL_NODE, GraphNode, GraphOutput, NodeKind

# Layout constants (pixels)
NODE_WIDTH = 220
NODE_HEIGHT = 80
HORIZONTAL_SPACE = 80
VERTICAL_SPACE = 40
COLUMN_STEP = NODE_WIDTH + HORIZONTAL_SPACE

# Recursion guard shared by tree building and layout
DEFAULT_MAX_DEPTH = 256

# Minimum horizontal tangent of an edge curve
EDGE_MIN_TANGENT = 40

# Port colors for weight 0 and weight 1
ZERO_WEIGHT_COLOR = (0x3C, 0x3C, 0x3C)
FULL_WEIGHT_COLOR = (0xFF, 0xFF, 0xFF)
DEFAULT_PORT_COLOR = "#c8c8c8"

Point = Tuple[float, float]
Size = Tuple[float, float]


class GraphTooDeepError(RecursionError):
    """Raised when a traversal exceeds the configured maximum depth."""

    pass


class CycleDetectedError(ValueError):
    """Raised when a layout traversal reaches the same node twice."""

    pass


class Capabilities(IntFlag):
    """Interaction capabilities a rendering layer may honor on a node."""

    NONE = 0
    SELECTABLE = 1
    MOVABLE = 2


class PortDirection(Enum):
    INPUT = "input"
    OUTPUT = "output"


def port_color(weight: float) -> str:
    """Map a connection weight to a ``#rrggbb`` color.

    Each channel is linearly interpolated between ``ZERO_WEIGHT_COLOR`` and
    ``FULL_WEIGHT_COLOR``, so the mapping is deterministic and monotonic.
    Weights outside [0, 1] are clamped and NaN is treated as 0.

    Parameters
    ----------
    weight : float
        Connection weight

    Returns
    -------
    str
        Hex color string
    """
    if math.isnan(weight):
        weight = 0.0
    weight = min(1.0, max(0.0, weight))
    channels = (
        int(round(low + (high - low) * weight))
        for low, high in zip(ZERO_WEIGHT_COLOR, FULL_WEIGHT_COLOR)
    )
    return "#" + "".join(f"{c:02x}" for c in channels)


class Port:
    """Attachment point of a visual node through which edges connect."""

    def __init__(self, owner: "VisualNode", direction: PortDirection, index: int) -> None:
        self.owner = owner
        self.direction = direction
        self.index = index
        self.color = DEFAULT_PORT_COLOR
        self.edges: List["VisualEdge"] = []

    def __repr__(self) -> str:
        return f"Port({self.owner!r}, {self.direction.value}, {self.index})"

    @property
    def connected(self) -> bool:
        return bool(self.edges)

    def connect(self, edge: "VisualEdge") -> None:
        if edge not in self.edges:
            self.edges.append(edge)

    def disconnect(self, edge: "VisualEdge") -> None:
        if edge in self.edges:
            self.edges.remove(edge)

    def disconnect_all(self) -> None:
        """Unbind every edge attached to this port."""
        for edge in list(self.edges):
            edge.disconnect()
        self.edges.clear()

    @property
    def position(self) -> Point:
        return self.owner.port_position(self)


class VisualEdge:
    """A connector between exactly one input port and one output port."""

    def __init__(self) -> None:
        self.key: Any = None
        self.input: Optional[Port] = None
        self.output: Optional[Port] = None
        self.attached = False
        self.control_points: Tuple[Point, ...] = ()

    def __repr__(self) -> str:
        return f"VisualEdge({self.output!r} -> {self.input!r})"

    def bind(self, input_port: Port, output_port: Port) -> None:
        """Bind both ends, leaving a stale port on either side first."""
        if self.input is not input_port:
            if self.input is not None:
                self.input.disconnect(self)
            self.input = input_port
            input_port.connect(self)

        if self.output is not output_port:
            if self.output is not None:
                self.output.disconnect(self)
            self.output = output_port
            output_port.connect(self)

    def disconnect(self) -> None:
        if self.input is not None:
            self.input.disconnect(self)
            self.input = None
        if self.output is not None:
            self.output.disconnect(self)
            self.output = None
        self.control_points = ()

    def recycle(self) -> None:
        # Bindings survive so the same logical edge can be rebound next tick
        pass

    def clear(self) -> None:
        self.disconnect()

    def detach(self) -> None:
        self.disconnect()

    def update_geometry(self) -> None:
        """Recompute the cubic curve from the output port to the input port."""
        if self.input is None or self.output is None:
            self.control_points = ()
            return
        sx, sy = self.output.position
        ex, ey = self.input.position
        tangent = max(abs(ex - sx) / 2, EDGE_MIN_TANGENT)
        self.control_points = ((sx, sy), (sx + tangent, sy), (ex - tangent, ey), (ex, ey))


class VisualNode:
    """Base of every visual node: a fixed footprint, a position and ports."""

    size: Size = (NODE_WIDTH, NODE_HEIGHT)
    css_class = "node"

    def __init__(self) -> None:
        self.key: Any = None
        self.position: Point = (0.0, 0.0)
        self.capabilities = Capabilities.SELECTABLE | Capabilities.MOVABLE
        self.title = ""
        self.attached = False

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.title!r})"

    @property
    def movable(self) -> bool:
        return bool(self.capabilities & Capabilities.MOVABLE)

    def set_movable(self, movable: bool) -> None:
        if movable:
            self.capabilities |= Capabilities.MOVABLE
        else:
            self.capabilities &= ~Capabilities.MOVABLE

    @property
    def bounds(self) -> Tuple[float, float, float, float]:
        x, y = self.position
        return (x, y, x + self.size[0], y + self.size[1])

    def ports(self) -> Iterator[Port]:
        return iter(())

    def port_position(self, port: Port) -> Point:
        x, y = self.position
        width, height = self.size
        siblings = self._port_count(port.direction)
        py = y + height * (port.index + 1) / (siblings + 1)
        if port.direction is PortDirection.INPUT:
            return (x, py)
        return (x + width, py)

    def _port_count(self, direction: PortDirection) -> int:
        return sum(1 for p in self.ports() if p.direction is direction)

    def describe(self) -> str:
        return self.title

    def recycle(self) -> None:
        """Reset per-tick state when the node goes dormant."""
        pass

    def clear(self) -> None:
        """Reset everything when the node is reused for another identity."""
        for port in self.ports():
            port.disconnect_all()
            port.color = DEFAULT_PORT_COLOR
        self.title = ""
        self.position = (0.0, 0.0)
        self.capabilities = Capabilities.SELECTABLE | Capabilities.MOVABLE

    def detach(self) -> None:
        for port in self.ports():
            port.disconnect_all()


class OutputVisualNode(VisualNode):
    """Visual node of a graph output, with a single input port."""

    css_class = "node node-output"

    def __init__(self) -> None:
        super().__init__()
        self.output: Optional[GraphOutput] = None
        self.index = -1
        self.input_port = Port(self, PortDirection.INPUT, 0)

    def ports(self) -> Iterator[Port]:
        yield self.input_port

    def update(self, output: GraphOutput, index: int) -> None:
        self.output = output
        self.index = index
        self.title = f"#{index} {output.name}"

    def describe(self) -> str:
        if self.output is None:
            return self.title
        lines = [
            f"Output: {self.output.name}",
            f"Index: {self.index}",
            f"Source port: {self.output.source_output_port}",
            f"Weight: {self.output.weight:.3f}",
        ]
        if not self.output.has_valid_source():
            lines.append("Source: none")
        return "\n".join(lines)

    def clear(self) -> None:
        super().clear()
        self.output = None
        self.index = -1


class GraphVisualNode(VisualNode):
    """Visual node of a graph node.

    A graph node can feed several parents, so output ports are handed out
    per parent through :meth:`find_output_port`, while outputs attach to an
    explicit port index through :meth:`get_output_port`.
    """

    def __init__(self) -> None:
        super().__init__()
        self.graph_node: GraphNode = NULL_NODE
        self.node_changed = False
        self.is_root = False
        self.parent_node: Optional["GraphVisualNode"] = None
        self.tree_size: Size = (0.0, 0.0)
        self.extra_label = ""
        self.show_progress = False
        self.input_ports: List[Port] = []
        self.output_ports: List[Port] = []
        self._port_by_parent: Dict[Any, Port] = {}
        self._claimed_ports: Set[int] = set()
        self._input_nodes: Dict[int, "GraphVisualNode"] = {}

    def ports(self) -> Iterator[Port]:
        yield from self.input_ports
        yield from self.output_ports

    def _port_count(self, direction: PortDirection) -> int:
        if direction is PortDirection.INPUT:
            return len(self.input_ports)
        return len(self.output_ports)

    # -- update ----------------------------------------------------------

    def update(self, context: Any, node: GraphNode) -> bool:
        """Refresh the node from *node*; return whether the identity changed."""
        self.node_changed = node != self.graph_node
        self.graph_node = node
        self.on_update(context, self.node_changed)
        return self.node_changed

    def on_update(self, context: Any, node_changed: bool) -> None:
        node = self.graph_node
        self.title = node.type_name
        labels = getattr(context, "node_extra_labels", None) or {}
        self.extra_label = labels.get(node.handle, "")
        self.show_progress = bool(getattr(context, "show_progress", False))
        self._sync_input_ports(node.input_count)

    def _sync_input_ports(self, count: int) -> None:
        while len(self.input_ports) > count:
            self.input_ports.pop().disconnect_all()
        while len(self.input_ports) < count:
            self.input_ports.append(Port(self, PortDirection.INPUT, len(self.input_ports)))

    # -- ports -----------------------------------------------------------

    def get_input_port(self, index: int) -> Port:
        return self.input_ports[index]

    def set_input_node(self, index: int, child: "GraphVisualNode") -> None:
        """Record *child* as the node feeding input *index* this tick."""
        self._input_nodes[index] = child

    def get_output_port(self, index: int) -> Port:
        """Return output port *index*, creating ports up to it if needed."""
        while len(self.output_ports) <= index:
            self.output_ports.append(Port(self, PortDirection.OUTPUT, len(self.output_ports)))
        self._claimed_ports.add(index)
        return self.output_ports[index]

    def find_output_port(self, parent: "VisualNode") -> Port:
        """Return the output port dedicated to *parent* this tick."""
        port = self._port_by_parent.get(parent.key)
        if port is not None:
            return port
        index = 0
        while index in self._claimed_ports:
            index += 1
        port = self.get_output_port(index)
        self._port_by_parent[parent.key] = port
        return port

    def trim_output_ports(self) -> None:
        """Drop trailing output ports nothing claimed this tick.

        Active edges are always bound to claimed ports, so whatever is still
        attached to a dropped port is a dormant edge.
        """
        while self.output_ports and self.output_ports[-1].index not in self._claimed_ports:
            self.output_ports.pop().disconnect_all()

    # -- tree ------------------------------------------------------------

    def find_root_graph_visual_node(self) -> Optional["GraphVisualNode"]:
        """Follow the visual parent chain up to its root node.

        Returns None when the chain loops or ends on a node that is not a
        root.
        """
        node = self
        seen = {id(node)}
        while node.parent_node is not None:
            node = node.parent_node
            if id(node) in seen:
                return None
            seen.add(id(node))
        return node if node.is_root else None

    def layout_children(self) -> List["GraphVisualNode"]:
        """Children laid out under this node, in input order.

        A child shared by several parents is only laid out under the parent
        recorded as its visual parent.
        """
        children: List[GraphVisualNode] = []
        for index in sorted(self._input_nodes):
            child = self._input_nodes[index]
            if child.parent_node is self and child not in children:
                children.append(child)
        return children

    def calculate_layout(
        self,
        origin: Point,
        max_depth: int = DEFAULT_MAX_DEPTH,
        _depth: int = 0,
        _visited: Optional[Set[int]] = None,
    ) -> Tuple[Point, Size]:
        """Lay out this node and its subtree.

        The node is placed at ``origin[0]``; its children are stacked top to
        bottom from ``origin[1]`` one column step to the left, and the node is
        centered vertically against them.

        Parameters
        ----------
        origin : tuple of (float, float)
            Column x and top y of the subtree
        max_depth : int
            Deepest level allowed below this node

        Returns
        -------
        tuple
            ``(position, tree_size)`` of this node

        Raises
        ------
        GraphTooDeepError
            If the subtree is deeper than *max_depth*
        CycleDetectedError
            If a node is reached twice
        """
        if _visited is None:
            _visited = set()
        if id(self) in _visited:
            raise CycleDetectedError(f"Layout reached {self!r} twice")
        if _depth > max_depth:
            raise GraphTooDeepError(f"Layout exceeded the maximum depth of {max_depth}")
        _visited.add(id(self))

        x, top = origin
        width, height = self.size
        children = self.layout_children()

        cursor = top
        children_width = 0.0
        for i, child in enumerate(children):
            if i > 0:
                cursor += VERTICAL_SPACE
            _, (child_width, child_height) = child.calculate_layout(
                (x - COLUMN_STEP, cursor), max_depth, _depth + 1, _visited
            )
            cursor += child_height
            children_width = max(children_width, child_width)

        if children:
            tree_height = max(float(height), cursor - top)
            tree_width = width + HORIZONTAL_SPACE + children_width
        else:
            tree_height = float(height)
            tree_width = float(width)

        self.position = (x, top + (tree_height - height) / 2)
        self.tree_size = (tree_width, tree_height)
        return self.position, self.tree_size

    # -- description -----------------------------------------------------

    def describe(self) -> str:
        lines: List[str] = []
        self._append_type_description(lines)
        lines.append(f"Handle: {self.graph_node.handle}")
        lines.append(f"Inputs: {len(self.input_ports)}")
        lines.append(f"Output ports: {len(self.output_ports)}")
        if self.extra_label:
            lines.append(f"Label: {self.extra_label}")
        return "\n".join(lines)

    def _append_type_description(self, lines: List[str]) -> None:
        lines.append(f"Type: {self.graph_node.type_name}")

    # -- lifecycle -------------------------------------------------------

    def recycle(self) -> None:
        self.is_root = False
        self.parent_node = None
        self.extra_label = ""
        self._port_by_parent.clear()
        self._claimed_ports.clear()
        self._input_nodes.clear()

    def clear(self) -> None:
        super().clear()
        self.recycle()
        self.graph_node = NULL_NODE
        self.node_changed = False
        self.tree_size = (0.0, 0.0)
        self.output_ports.clear()


_UNSET = object()


class ScriptGraphVisualNode(GraphVisualNode):
    """Graph node driven by a script job; also shows the job type."""

    css_class = "node node-script"

    def __init__(self) -> None:
        super().__init__()
        self.job_label = ""
        self._job_type: Any = _UNSET

    def on_update(self, context: Any, node_changed: bool) -> None:
        super().on_update(context, node_changed)
        if node_changed:
            self._job_type = _UNSET
            self.job_label = self.get_job_type() or ""

    def get_job_type(self) -> Optional[str]:
        if self._job_type is _UNSET:
            self._job_type = self.graph_node.job_type
        return self._job_type

    def _append_type_description(self, lines: List[str]) -> None:
        super()._append_type_description(lines)
        lines.append(f"Job: {self.get_job_type() or '?'}")

    def clear(self) -> None:
        super().clear()
        self.job_label = ""
        self._job_type = _UNSET


GRAPH_NODE_VARIANTS: Dict[NodeKind, Type[GraphVisualNode]] = {
    NodeKind.GENERIC: GraphVisualNode,
    NodeKind.SCRIPT: ScriptGraphVisualNode,
}


def graph_node_variant(kind: NodeKind) -> Type[GraphVisualNode]:
    """Return the visual node class for a node kind."""
    return GRAPH_NODE_VARIANTS.get(kind, GraphVisualNode)


class ScheduledTask:
    """A one-shot callback queued on a :class:`Surface`."""

    def __init__(self, callback: Callable[[], Any]) -> None:
        self.callback = callback
        self.cancelled = False
        self.done = False

    @property
    def pending(self) -> bool:
        return not (self.cancelled or self.done)

    def cancel(self) -> None:
        self.cancelled = True


class Surface:
    """The drawable surface visual objects are attached to.

    This default implementation only records what is attached; a rendering
    toolkit subclasses it and overrides :meth:`add_element` and
    :meth:`remove_element` to create or drop its own widgets.
    """

    def __init__(self) -> None:
        self._elements: Dict[Any, None] = {}
        self._pending: List[ScheduledTask] = []
        self.viewport: Tuple[float, float, float, float] = (0.0, 0.0, 0.0, 0.0)

    def __repr__(self) -> str:
        return f"Surface(nodes={len(self.nodes())}, edges={len(self.edges())})"

    # -- elements --------------------------------------------------------

    def add_element(self, element: Any) -> None:
        if element not in self._elements:
            self._elements[element] = None
            element.attached = True

    def remove_element(self, element: Any) -> None:
        if element in self._elements:
            del self._elements[element]
            element.attached = False

    def contains(self, element: Any) -> bool:
        return element in self._elements

    def nodes(self) -> List[VisualNode]:
        return [e for e in self._elements if isinstance(e, VisualNode)]

    def edges(self) -> List[VisualEdge]:
        return [e for e in self._elements if isinstance(e, VisualEdge)]

    # -- idle queue ------------------------------------------------------

    def schedule(self, callback: Callable[[], Any]) -> ScheduledTask:
        """Queue *callback* to run on the next idle tick."""
        task = ScheduledTask(callback)
        self._pending.append(task)
        return task

    def run_pending(self) -> int:
        """Run queued callbacks; return how many actually ran."""
        tasks, self._pending = self._pending, []
        ran = 0
        for task in tasks:
            if not task.pending:
                continue
            task.done = True
            task.callback()
            ran += 1
        return ran

    # -- viewport --------------------------------------------------------

    def frame_all(self, padding: float = 20.0) -> None:
        """Fit the viewport around every attached node."""
        nodes = self.nodes()
        if not nodes:
            self.viewport = (0.0, 0.0, 0.0, 0.0)
            return
        min_x = min(n.bounds[0] for n in nodes)
        min_y = min(n.bounds[1] for n in nodes)
        max_x = max(n.bounds[2] for n in nodes)
        max_y = max(n.bounds[3] for n in nodes)
        self.viewport = (
            min_x - padding,
            min_y - padding,
            max_x - min_x + 2 * padding,
            max_y - min_y + 2 * padding,
        )

    # -- export ----------------------------------------------------------

    def to_svg(self, padding: int = 20, font_size: int = 11, show_labels: bool = True) -> str:
        """Export the attached scene as an SVG diagram.

        Parameters
        ----------
        padding : int
            Padding around the diagram (default: 20)
        font_size : int
            Font size for node titles (default: 11)
        show_labels : bool
            Whether to draw node titles (default: True)

        Returns
        -------
        str
            SVG markup as a string
        """
        nodes = self.nodes()
        if not nodes:
            return '<svg xmlns="http://www.w3.org/2000/svg" width="100" height="100"></svg>'

        min_x = min(n.bounds[0] for n in nodes)
        min_y = min(n.bounds[1] for n in nodes)
        max_x = max(n.bounds[2] for n in nodes)
        max_y = max(n.bounds[3] for n in nodes)

        svg_width = int(max_x - min_x + 2 * padding)
        svg_height = int(max_y - min_y + 2 * padding)
        offset_x = -min_x + padding
        offset_y = -min_y + padding

        def fmt(point: Point) -> str:
            return f"{point[0] + offset_x:g} {point[1] + offset_y:g}"

        lines = [
            f'<svg xmlns="http://www.w3.org/2000/svg" width="{svg_width}" height="{svg_height}">',
            "  <defs>",
            "    <style>",
            "      .node { fill: #2d2d2d; stroke: #111; stroke-width: 1; }",
            "      .node-output { fill: #1f3a5f; }",
            "      .node-script { fill: #3f2a5a; }",
            "      .node-text { font-family: sans-serif; font-size: "
            + str(font_size)
            + "px; fill: #eee; }",
            "      .edge { stroke-width: 2; fill: none; }",
            "    </style>",
            "  </defs>",
            "",
        ]

        lines.append("  <!-- Edges -->")
        for edge in self.edges():
            if edge.input is None or edge.output is None:
                continue
            if not edge.control_points:
                edge.update_geometry()
            start, c1, c2, end = edge.control_points
            lines.append(
                f'  <path class="edge" stroke="{edge.input.color}" '
                f'd="M {fmt(start)} C {fmt(c1)}, {fmt(c2)}, {fmt(end)}"/>'
            )

        lines.append("")
        lines.append("  <!-- Nodes -->")
        for node in nodes:
            x, y = node.position
            w, h = node.size
            lines.append(
                f'  <rect class="{node.css_class}" x="{x + offset_x:g}" y="{y + offset_y:g}" '
                f'width="{w}" height="{h}" rx="4"/>'
            )
            for port in node.ports():
                px, py = port.position
                lines.append(
                    f'  <circle cx="{px + offset_x:g}" cy="{py + offset_y:g}" r="4" '
                    f'fill="{port.color}"/>'
                )
            if show_labels and node.title:
                text = node.title.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")
                lines.append(
                    f'  <text class="node-text" x="{x + offset_x + 8:g}" '
                    f'y="{y + offset_y + font_size + 6:g}">{text}</text>'
                )

        lines.append("</svg>")
        return "\n".join(lines)

    def save_svg(self, filename: str, **kwargs) -> None:
        """Save the scene as an SVG file; *kwargs* are passed to :meth:`to_svg`."""
        with open(filename, "w") as f:
            f.write(self.to_svg(**kwargs))
