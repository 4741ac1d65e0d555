"""Tests for graphmirror.pool module."""

import pytest

from graphmirror import (
    EdgePool,
    GraphNodePool,
    GraphVisualNode,
    HandlePool,
    NodeKind,
    NodeNotFoundError,
    OutputNodePool,
    OutputVisualNode,
    RuntimeGraph,
    ScriptGraphVisualNode,
    Surface,
    UpdateContext,
)


class TestHandlePool:
    """Tests for the generic active/dormant pool."""

    def test_alloc_creates_and_attaches(self):
        surface = Surface()
        pool = HandlePool(surface)
        node = pool.alloc("a", GraphVisualNode)
        assert isinstance(node, GraphVisualNode)
        assert node.key == "a"
        assert node.attached
        assert surface.contains(node)
        assert pool.created_count == 1

    def test_alloc_same_key_returns_active(self):
        pool = HandlePool(Surface())
        first = pool.alloc("a", GraphVisualNode)
        assert pool.alloc("a", GraphVisualNode) is first
        assert pool.active_count == 1
        assert pool.created_count == 1

    def test_recycle_and_reuse_same_key(self):
        pool = HandlePool(Surface())
        a = pool.alloc("a", GraphVisualNode)
        b = pool.alloc("b", GraphVisualNode)
        pool.recycle_all_active()
        assert pool.active_count == 0
        assert pool.dormant_count == 2

        # "b" was recycled last, but "a" gets its own instance back
        assert pool.alloc("a", GraphVisualNode) is a
        assert pool.alloc("b", GraphVisualNode) is b
        assert pool.created_count == 2

    def test_reuse_for_other_key_clears(self):
        pool = HandlePool(Surface())
        a = pool.alloc("a", GraphVisualNode)
        a.title = "stale"
        a.position = (50.0, 50.0)
        pool.recycle_all_active()

        reused = pool.alloc("z", GraphVisualNode)
        assert reused is a
        assert reused.key == "z"
        assert reused.title == ""
        assert reused.position == (0.0, 0.0)

    def test_lifo_reuse(self):
        pool = HandlePool(Surface())
        pool.alloc("a", GraphVisualNode)
        b = pool.alloc("b", GraphVisualNode)
        pool.recycle_all_active()
        assert pool.alloc("new", GraphVisualNode) is b

    def test_kinds_have_separate_free_lists(self):
        pool = HandlePool(Surface())
        generic = pool.alloc("a", GraphVisualNode)
        pool.recycle_all_active()
        script = pool.alloc("b", ScriptGraphVisualNode)
        assert script is not generic
        assert isinstance(script, ScriptGraphVisualNode)
        assert pool.dormant_count == 1

    def test_get_active_missing(self):
        pool = HandlePool(Surface())
        with pytest.raises(NodeNotFoundError, match="No active"):
            pool.get_active("missing")
        assert pool.try_get_active("missing") is None
        assert not pool.is_active("missing")

    def test_get_active_after_recycle(self):
        pool = HandlePool(Surface())
        pool.alloc("a", GraphVisualNode)
        pool.recycle_all_active()
        with pytest.raises(NodeNotFoundError):
            pool.get_active("a")

    def test_active_items_in_allocation_order(self):
        pool = HandlePool(Surface())
        nodes = [pool.alloc(key, GraphVisualNode) for key in ("c", "a", "b")]
        assert pool.get_active_items() == nodes

    def test_conservation(self):
        pool = HandlePool(Surface())
        for tick in range(4):
            pool.recycle_all_active()
            for key in range(tick + 1):
                pool.alloc(key, GraphVisualNode)
            assert pool.active_count + pool.dormant_count == pool.created_count
        assert pool.created_count == 4

    def test_prune_dormant(self):
        surface = Surface()
        pool = HandlePool(surface)
        a = pool.alloc("a", GraphVisualNode)
        b = pool.alloc("b", GraphVisualNode)
        pool.recycle_all_active()
        pool.alloc("a", GraphVisualNode)
        pool.prune_dormant_from_display()
        assert a.attached
        assert not b.attached
        assert surface.nodes() == [a]

    def test_reattach_after_prune(self):
        surface = Surface()
        pool = HandlePool(surface)
        a = pool.alloc("a", GraphVisualNode)
        pool.recycle_all_active()
        pool.prune_dormant_from_display()
        assert not a.attached
        assert pool.alloc("a", GraphVisualNode) is a
        assert a.attached

    def test_custom_factory(self):
        made = []

        def factory(kind):
            made.append(kind)
            return OutputVisualNode()

        pool = HandlePool(Surface(), factory)
        pool.alloc("a", "anything")
        assert made == ["anything"]


class TestEdgePool:
    """Tests for EdgePool keys."""

    def test_key_is_unordered(self):
        parent = OutputVisualNode()
        parent.key = "out"
        child = GraphVisualNode()
        child.key = "child"
        a = EdgePool.edge_key(parent.input_port, child.get_output_port(0))
        b = EdgePool.edge_key(child.get_output_port(0), parent.input_port)
        assert a == b

    def test_alloc_by_ports(self):
        pool = EdgePool(Surface())
        parent = OutputVisualNode()
        parent.key = "out"
        child = GraphVisualNode()
        child.key = "child"
        edge = pool.alloc(parent.input_port, child.get_output_port(0))
        assert pool.alloc(child.get_output_port(0), parent.input_port) is edge
        assert pool.get_active_edges() == [edge]

    def test_prune_disconnects_dormant_edge(self):
        pool = EdgePool(Surface())
        parent = OutputVisualNode()
        parent.key = "out"
        child = GraphVisualNode()
        child.key = "child"
        port = child.get_output_port(0)
        edge = pool.alloc(parent.input_port, port)
        edge.bind(parent.input_port, port)

        pool.recycle_all_active()
        # Recycled edges keep their bindings until pruned
        assert edge.input is parent.input_port
        pool.prune_dormant_from_display()
        assert edge.input is None
        assert not port.connected


class TestOutputNodePool:
    """Tests for OutputNodePool."""

    def test_alloc_and_update(self):
        g = RuntimeGraph()
        out = g.add_output("Animation")
        pool = OutputNodePool(Surface())
        node = pool.alloc(out)
        assert pool.update(out, 0) is node
        assert node.title == "#0 Animation"
        assert node.output == out
        assert pool.get_active_nodes() == [node]

    def test_key_distinct_from_node_handles(self):
        g = RuntimeGraph()
        g.add_node()
        out = g.add_output("Animation")
        assert OutputNodePool.output_key(out) == ("output", out.handle)
        assert OutputNodePool.output_key(out) != g.get_root(0).handle


class TestGraphNodePool:
    """Tests for GraphNodePool."""

    def test_variant_by_kind(self):
        g = RuntimeGraph()
        generic = g.add_node("Clip")
        script = g.add_node("ScriptPlayable", kind=NodeKind.SCRIPT)
        pool = GraphNodePool(Surface())
        assert type(pool.alloc(generic)) is GraphVisualNode
        assert type(pool.alloc(script)) is ScriptGraphVisualNode

    def test_lookup_by_node(self):
        g = RuntimeGraph()
        node = g.add_node("Clip")
        other = g.add_node("Clip")
        pool = GraphNodePool(Surface())
        visual = pool.alloc(node)
        assert pool.get_active(node) is visual
        assert pool.is_node_active(node)
        assert not pool.is_node_active(other)
        assert pool.try_get_active(other) is None
        with pytest.raises(NodeNotFoundError):
            pool.get_active(other)

    def test_update(self):
        g = RuntimeGraph()
        node = g.add_node("AnimationMixer", input_count=2)
        pool = GraphNodePool(Surface())
        pool.alloc(node)
        visual = pool.update(UpdateContext(), node)
        assert visual.graph_node == node
        assert visual.node_changed
        assert len(visual.input_ports) == 2
        assert pool.get_active_nodes() == [visual]
