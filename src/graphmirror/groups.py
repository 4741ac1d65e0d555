"""Output groups: outputs that share a source node, laid out as one column."""

from typing import Iterator, List, Optional, Set

from .scene import VERTICAL_SPACE, GraphVisualNode, OutputVisualNode, Point


class OutputGroup:
    """All output nodes attached to the same source node.

    A group with no source node collects the outputs that have no source.
    Groups of sources deeper in a root's tree are nested as child groups of
    that root's group, so the root reserves room for all of them.
    """

    def __init__(self) -> None:
        self.output_nodes: List[OutputVisualNode] = []
        self.source_node: Optional[GraphVisualNode] = None
        self.child_groups: List["OutputGroup"] = []

    def __repr__(self) -> str:
        return (
            f"OutputGroup(source={self.source_node!r}, outputs={len(self.output_nodes)}, "
            f"children={len(self.child_groups)})"
        )

    def clear(self) -> None:
        self.output_nodes.clear()
        self.source_node = None
        self.child_groups.clear()

    def iter_output_nodes(self) -> Iterator[OutputVisualNode]:
        """Own output nodes first, then those of each child group, depth first."""
        seen: Set[int] = set()
        stack: List[OutputGroup] = [self]
        while stack:
            group = stack.pop()
            if id(group) in seen:
                continue
            seen.add(id(group))
            yield from group.output_nodes
            stack.extend(reversed(group.child_groups))

    def get_outputs_vertical_size(self) -> float:
        """Height needed to stack every output of this group and its children."""
        heights = [node.size[1] for node in self.iter_output_nodes()]
        if not heights:
            return 0.0
        return float(sum(heights) + VERTICAL_SPACE * (len(heights) - 1))

    def layout_output_nodes(self, origin: Point) -> float:
        """Stack the outputs in one column centered on ``origin[1]``.

        Parameters
        ----------
        origin : tuple of (float, float)
            Column x and vertical center of the stack

        Returns
        -------
        float
            Bottom edge of the stack
        """
        x, center = origin
        size = self.get_outputs_vertical_size()
        y = center - size / 2
        for node in self.iter_output_nodes():
            node.position = (x, y)
            y += node.size[1] + VERTICAL_SPACE
        return center + size / 2
