"""Tests for graphmirror.groups module."""

from graphmirror import NODE_HEIGHT, VERTICAL_SPACE, OutputGroup, OutputVisualNode


def _group(count):
    group = OutputGroup()
    group.output_nodes.extend(OutputVisualNode() for _ in range(count))
    return group


class TestOutputGroup:
    """Tests for output stacking."""

    def test_empty_size(self):
        assert OutputGroup().get_outputs_vertical_size() == 0.0

    def test_single_size(self):
        assert _group(1).get_outputs_vertical_size() == NODE_HEIGHT

    def test_size_includes_spacing(self):
        assert _group(3).get_outputs_vertical_size() == 3 * NODE_HEIGHT + 2 * VERTICAL_SPACE

    def test_child_groups_counted(self):
        parent = _group(1)
        parent.child_groups.append(_group(2))
        assert parent.get_outputs_vertical_size() == 3 * NODE_HEIGHT + 2 * VERTICAL_SPACE

    def test_iteration_order(self):
        parent = _group(1)
        child = _group(1)
        grandchild = _group(1)
        sibling = _group(1)
        child.child_groups.append(grandchild)
        parent.child_groups.extend([child, sibling])
        expected = (
            parent.output_nodes + child.output_nodes + grandchild.output_nodes + sibling.output_nodes
        )
        assert list(parent.iter_output_nodes()) == expected

    def test_repeated_child_visited_once(self):
        parent = _group(1)
        child = _group(1)
        parent.child_groups.extend([child, child])
        assert len(list(parent.iter_output_nodes())) == 2

    def test_layout_centered(self):
        group = _group(2)
        bottom = group.layout_output_nodes((300.0, 100.0))
        size = 2 * NODE_HEIGHT + VERTICAL_SPACE
        first, second = group.output_nodes
        assert first.position == (300.0, 100.0 - size / 2)
        assert second.position == (300.0, 100.0 - size / 2 + NODE_HEIGHT + VERTICAL_SPACE)
        assert bottom == 100.0 + size / 2

    def test_layout_empty(self):
        assert OutputGroup().layout_output_nodes((0.0, 50.0)) == 50.0

    def test_clear(self):
        group = _group(2)
        group.child_groups.append(_group(1))
        group.clear()
        assert group.output_nodes == []
        assert group.child_groups == []
        assert group.source_node is None
