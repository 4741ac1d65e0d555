"""
Host graph model for graphmirror.

The synchronizer in :mod:`graphmirror.view` only reads a graph through a small
duck-typed surface (``handle``, ``name``, ``is_valid()``, outputs, roots and
``node_count``). This module provides that surface as an in-memory
:class:`RuntimeGraph`, which doubles as a builder for hosts that do not own a
graph implementation of their own.

Example usage:
    >>> from graphmirror.graph import RuntimeGraph
    >>> g = RuntimeGraph('mixer')
    >>> mixer = g.add_node('Mixer', input_count=2)
    >>> clip = g.add_node('Clip')
    >>> g.connect(clip, mixer, 0, weight=0.5)
    >>> out = g.add_output('Animation', mixer)
    >>> g.root_count
    1
"""

from dataclasses import dataclass, field
from enum import Enum
import itertools
from typing import Dict, List, Optional


class GraphConnectionError(ValueError):
    """Raised when a graph edit references an invalid node, slot or weight."""

    pass


class NodeKind(str, Enum):
    """Closed set of node variants a host can report."""

    GENERIC = "generic"
    SCRIPT = "script"


@dataclass(frozen=True)
class Handle:
    """Opaque, stable identity of a graph node, output or graph.

    The default value is the invalid sentinel. Node and output handles made
    by a :class:`RuntimeGraph` carry the graph's serial as *version*, so
    handles from different graphs never compare equal.
    """

    index: int = -1
    version: int = 0

    @property
    def is_valid(self) -> bool:
        return self.index >= 0

    def __str__(self) -> str:
        if not self.is_valid:
            return "<invalid>"
        return f"{self.index}:{self.version}"


INVALID_HANDLE = Handle()


@dataclass
class _NodeRecord:
    handle: Handle
    type_name: str
    kind: NodeKind
    job_type: Optional[str]
    inputs: List[Optional[Handle]] = field(default_factory=list)
    weights: List[float] = field(default_factory=list)


@dataclass
class _OutputRecord:
    handle: Handle
    name: str
    source: Handle = INVALID_HANDLE
    source_output_port: int = 0
    weight: float = 1.0


class GraphNode:
    """A node of a :class:`RuntimeGraph`, addressed through its handle.

    Instances are cheap views: two views with the same handle compare equal
    and a view whose node was removed simply reports itself invalid.
    """

    def __init__(self, graph: Optional["RuntimeGraph"], handle: Handle) -> None:
        self._graph = graph
        self.handle = handle

    def _record(self) -> _NodeRecord:
        if self._graph is None:
            raise GraphConnectionError("Null node has no record")
        return self._graph._node_record(self.handle)

    def is_valid(self) -> bool:
        return (
            self._graph is not None
            and self._graph.is_valid()
            and self._graph._has_node(self.handle)
        )

    @property
    def input_count(self) -> int:
        if not self.is_valid():
            return 0
        return len(self._record().inputs)

    def get_input(self, index: int) -> "GraphNode":
        """Return the child node feeding input *index* (a null node if empty)."""
        record = self._record()
        if not 0 <= index < len(record.inputs):
            raise GraphConnectionError(
                f"Input index {index} out of range for {self!r} "
                f"(has {len(record.inputs)} input{'s' if len(record.inputs) != 1 else ''})"
            )
        child = record.inputs[index]
        if child is None:
            return NULL_NODE
        return GraphNode(self._graph, child)

    def get_input_weight(self, index: int) -> float:
        record = self._record()
        if not 0 <= index < len(record.weights):
            raise GraphConnectionError(f"Input index {index} out of range for {self!r}")
        return record.weights[index]

    @property
    def type_name(self) -> str:
        if not self.is_valid():
            return ""
        return self._record().type_name

    @property
    def kind(self) -> NodeKind:
        if not self.is_valid():
            return NodeKind.GENERIC
        return self._record().kind

    @property
    def job_type(self) -> Optional[str]:
        """Name of the job driving a script node, as reported by the host."""
        if not self.is_valid():
            return None
        return self._record().job_type

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, GraphNode):
            return NotImplemented
        return self.handle == other.handle

    def __hash__(self) -> int:
        return hash(self.handle)

    def __repr__(self) -> str:
        if not self.is_valid():
            return f"GraphNode({self.handle})"
        return f"GraphNode({self.type_name!r}, {self.handle})"


NULL_NODE = GraphNode(None, INVALID_HANDLE)


class GraphOutput:
    """An exit point of a :class:`RuntimeGraph` attached to a source node port."""

    def __init__(self, graph: "RuntimeGraph", handle: Handle) -> None:
        self._graph = graph
        self.handle = handle

    def _record(self) -> _OutputRecord:
        return self._graph._output_record(self.handle)

    @property
    def name(self) -> str:
        return self._record().name

    @property
    def source(self) -> GraphNode:
        source = self._record().source
        if not source.is_valid or not self._graph._has_node(source):
            return NULL_NODE
        return GraphNode(self._graph, source)

    @property
    def source_output_port(self) -> int:
        return self._record().source_output_port

    @property
    def weight(self) -> float:
        return self._record().weight

    def has_valid_source(self) -> bool:
        return self.source.is_valid()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, GraphOutput):
            return NotImplemented
        return self.handle == other.handle

    def __hash__(self) -> int:
        return hash(("output", self.handle))

    def __repr__(self) -> str:
        return f"GraphOutput({self.name!r}, {self.handle})"


def _check_weight(weight: float) -> float:
    weight = float(weight)
    if not 0.0 <= weight <= 1.0:
        raise GraphConnectionError(f"Weight must be within [0, 1], got {weight}")
    return weight


class RuntimeGraph:
    """An in-memory runtime graph of nodes and outputs.

    Nodes are connected child-to-parent: ``connect(child, parent, i)`` makes
    *child* the input *i* of *parent*. Nodes without a parent node are the
    graph's roots, reported in creation order.

    Parameters
    ----------
    name : str
        Display name used in diagnostics
    """

    _graph_ids = itertools.count()

    def __init__(self, name: str = "") -> None:
        self.name = name
        self.handle = Handle(next(RuntimeGraph._graph_ids))
        self._valid = True
        self._nodes: Dict[int, _NodeRecord] = {}
        self._next_index = 0
        self._outputs: List[_OutputRecord] = []

    def __repr__(self) -> str:
        return (
            f"RuntimeGraph({self.name!r}, nodes={len(self._nodes)}, "
            f"outputs={len(self._outputs)})"
        )

    # -- validity --------------------------------------------------------

    def is_valid(self) -> bool:
        return self._valid

    def destroy(self) -> None:
        """Invalidate the graph; every node and output view becomes invalid."""
        self._valid = False
        self._nodes.clear()
        self._outputs.clear()

    # -- internal lookups ------------------------------------------------

    def _has_node(self, handle: Handle) -> bool:
        record = self._nodes.get(handle.index)
        return record is not None and record.handle == handle

    def _node_record(self, handle: Handle) -> _NodeRecord:
        if not self._has_node(handle):
            raise GraphConnectionError(f"Node {handle} is not part of graph {self.name!r}")
        return self._nodes[handle.index]

    def _output_record(self, handle: Handle) -> _OutputRecord:
        if not 0 <= handle.index < len(self._outputs) or self._outputs[handle.index].handle != handle:
            raise GraphConnectionError(f"Output {handle} is not part of graph {self.name!r}")
        return self._outputs[handle.index]

    def _require_node(self, node: GraphNode, role: str) -> _NodeRecord:
        if node._graph is not self or not self._has_node(node.handle):
            raise GraphConnectionError(f"{role.capitalize()} node {node!r} not found in graph")
        return self._nodes[node.handle.index]

    # -- nodes -----------------------------------------------------------

    def add_node(
        self,
        type_name: str = "Playable",
        input_count: int = 0,
        kind: NodeKind = NodeKind.GENERIC,
        job_type: Optional[str] = None,
    ) -> GraphNode:
        """Create a node with *input_count* empty input slots.

        Parameters
        ----------
        type_name : str
            Display type of the node
        input_count : int
            Number of input slots (default: 0)
        kind : NodeKind
            Variant used to pick the visual node class
        job_type : str, optional
            Job name exposed to script nodes

        Returns
        -------
        GraphNode
            A view on the new node
        """
        if input_count < 0:
            raise GraphConnectionError(f"Input count must be non-negative, got {input_count}")
        index = self._next_index
        self._next_index += 1
        handle = Handle(index, self.handle.index)
        self._nodes[index] = _NodeRecord(
            handle=handle,
            type_name=type_name,
            kind=NodeKind(kind),
            job_type=job_type,
            inputs=[None] * input_count,
            weights=[0.0] * input_count,
        )
        return GraphNode(self, handle)

    def set_input_count(self, node: GraphNode, input_count: int) -> None:
        """Grow or shrink the input slots of *node*; dropped slots are disconnected."""
        record = self._require_node(node, "target")
        if input_count < 0:
            raise GraphConnectionError(f"Input count must be non-negative, got {input_count}")
        current = len(record.inputs)
        if input_count < current:
            del record.inputs[input_count:]
            del record.weights[input_count:]
        else:
            record.inputs.extend([None] * (input_count - current))
            record.weights.extend([0.0] * (input_count - current))

    def connect(
        self,
        source: GraphNode,
        parent: GraphNode,
        input_index: int = 0,
        weight: float = 1.0,
    ) -> None:
        """Make *source* the input *input_index* of *parent*.

        Raises
        ------
        GraphConnectionError
            If either node is foreign, the slot is out of range, or the
            weight is outside [0, 1]
        """
        self._require_node(source, "source")
        record = self._require_node(parent, "parent")
        if not 0 <= input_index < len(record.inputs):
            raise GraphConnectionError(
                f"Input index {input_index} out of range for {parent!r} "
                f"(has {len(record.inputs)} input{'s' if len(record.inputs) != 1 else ''})"
            )
        record.inputs[input_index] = source.handle
        record.weights[input_index] = _check_weight(weight)

    def disconnect(self, parent: GraphNode, input_index: int) -> None:
        record = self._require_node(parent, "parent")
        if not 0 <= input_index < len(record.inputs):
            raise GraphConnectionError(f"Input index {input_index} out of range for {parent!r}")
        record.inputs[input_index] = None
        record.weights[input_index] = 0.0

    def set_input_weight(self, parent: GraphNode, input_index: int, weight: float) -> None:
        record = self._require_node(parent, "parent")
        if not 0 <= input_index < len(record.weights):
            raise GraphConnectionError(f"Input index {input_index} out of range for {parent!r}")
        record.weights[input_index] = _check_weight(weight)

    def remove_node(self, node: GraphNode) -> None:
        """Remove *node*, disconnecting it from parents and outputs.

        Node indices are never reused, so handles to the removed node stay
        invalid for the lifetime of the graph.
        """
        record = self._require_node(node, "target")
        del self._nodes[record.handle.index]
        for other in self._nodes.values():
            for i, child in enumerate(other.inputs):
                if child == record.handle:
                    other.inputs[i] = None
                    other.weights[i] = 0.0
        for output in self._outputs:
            if output.source == record.handle:
                output.source = INVALID_HANDLE

    @property
    def node_count(self) -> int:
        return len(self._nodes)

    @property
    def root_count(self) -> int:
        return len(self._root_records())

    def get_root(self, index: int) -> GraphNode:
        roots = self._root_records()
        if not 0 <= index < len(roots):
            raise IndexError(f"Root index {index} out of range (has {len(roots)} roots)")
        return GraphNode(self, roots[index].handle)

    def _root_records(self) -> List[_NodeRecord]:
        children = {child for r in self._nodes.values() for child in r.inputs if child is not None}
        return [r for _, r in sorted(self._nodes.items()) if r.handle not in children]

    def nodes(self) -> List[GraphNode]:
        """Return views on every live node in creation order."""
        return [GraphNode(self, r.handle) for _, r in sorted(self._nodes.items())]

    # -- outputs ---------------------------------------------------------

    def add_output(
        self,
        name: str,
        source: Optional[GraphNode] = None,
        source_output_port: int = 0,
        weight: float = 1.0,
    ) -> GraphOutput:
        """Create an output, optionally attached to *source*'s output port."""
        handle = Handle(len(self._outputs), self.handle.index)
        self._outputs.append(_OutputRecord(handle=handle, name=name, weight=_check_weight(weight)))
        output = GraphOutput(self, handle)
        if source is not None:
            self.set_output_source(output, source, source_output_port)
        return output

    def set_output_source(
        self, output: GraphOutput, source: Optional[GraphNode], source_output_port: int = 0
    ) -> None:
        record = self._output_record(output.handle)
        if source_output_port < 0:
            raise GraphConnectionError(
                f"Output port index must be non-negative, got {source_output_port}"
            )
        if source is None or not source.handle.is_valid:
            record.source = INVALID_HANDLE
        else:
            record.source = self._require_node(source, "source").handle
        record.source_output_port = source_output_port

    def set_output_weight(self, output: GraphOutput, weight: float) -> None:
        self._output_record(output.handle).weight = _check_weight(weight)

    @property
    def output_count(self) -> int:
        return len(self._outputs)

    def get_output(self, index: int) -> GraphOutput:
        if not 0 <= index < len(self._outputs):
            raise IndexError(f"Output index {index} out of range (has {len(self._outputs)} outputs)")
        return GraphOutput(self, self._outputs[index].handle)
