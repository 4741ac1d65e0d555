"""
graphmirror - live visual mirror of a runtime node graph
========================================================

Keep a scene of pooled visual nodes and edges in sync with a graph that
changes every frame, and lay it out as a forest of trees.

Example:
  >>> from graphmirror import GraphView, RuntimeGraph, UpdateContext
  >>> g = RuntimeGraph('character')
  >>> mixer = g.add_node('AnimationMixer', input_count=2)
  >>> idle = g.add_node('AnimationClip')
  >>> walk = g.add_node('AnimationClip')
  >>> g.connect(idle, mixer, 0, weight=0.25)
  >>> g.connect(walk, mixer, 1, weight=0.75)
  >>> out = g.add_output('Animation', mixer)
  >>> view = GraphView()
  >>> view.update(UpdateContext(graph=g))  # call again on every refresh tick
  >>> view.surface.save_svg('graph.svg')
"""

# Host graph model
from .graph import (
    Handle as Handle,
    INVALID_HANDLE as INVALID_HANDLE,
    NULL_NODE as NULL_NODE,
    GraphNode as GraphNode,
    GraphOutput as GraphOutput,
    RuntimeGraph as RuntimeGraph,
    NodeKind as NodeKind,
    GraphConnectionError as GraphConnectionError,
)

# Visual scene
from .scene import (
    Surface as Surface,
    ScheduledTask as ScheduledTask,
    Port as Port,
    PortDirection as PortDirection,
    VisualEdge as VisualEdge,
    VisualNode as VisualNode,
    OutputVisualNode as OutputVisualNode,
    GraphVisualNode as GraphVisualNode,
    ScriptGraphVisualNode as ScriptGraphVisualNode,
    Capabilities as Capabilities,
    GRAPH_NODE_VARIANTS as GRAPH_NODE_VARIANTS,
    graph_node_variant as graph_node_variant,
    port_color as port_color,
    GraphTooDeepError as GraphTooDeepError,
    CycleDetectedError as CycleDetectedError,
    # Layout constants
    NODE_WIDTH as NODE_WIDTH,
    NODE_HEIGHT as NODE_HEIGHT,
    HORIZONTAL_SPACE as HORIZONTAL_SPACE,
    VERTICAL_SPACE as VERTICAL_SPACE,
    COLUMN_STEP as COLUMN_STEP,
    DEFAULT_MAX_DEPTH as DEFAULT_MAX_DEPTH,
)

# Pools and groups
from .pool import (
    HandlePool as HandlePool,
    EdgePool as EdgePool,
    OutputNodePool as OutputNodePool,
    GraphNodePool as GraphNodePool,
    NodeNotFoundError as NodeNotFoundError,
)
from .groups import OutputGroup as OutputGroup

# Synchronizer
from .view import (
    GraphView as GraphView,
    UpdateContext as UpdateContext,
    CycleWarning as CycleWarning,
)
