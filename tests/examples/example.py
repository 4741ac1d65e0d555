"""
graphmirror - Examples
======================

This module demonstrates the main features of graphmirror:
- Building a runtime graph with weighted connections and outputs
- Mirroring it onto a surface with GraphView, tick after tick
- Script-driven nodes and their job labels
- Nodes shared by several parents and outputs of inner nodes
- What the view does with cycles
- SVG export of the mirrored scene
"""

import warnings

from graphmirror import (
    CycleWarning,
    GraphView,
    NodeKind,
    RuntimeGraph,
    UpdateContext,
)


# =============================================================================
# Example 1: Locomotion blend
# =============================================================================


def locomotion_blend() -> RuntimeGraph:
    """A mixer blending idle, walk and run clips into one animation output."""
    g = RuntimeGraph("locomotion")

    mixer = g.add_node("AnimationMixer", input_count=3)
    idle = g.add_node("AnimationClip")
    walk = g.add_node("AnimationClip")
    run = g.add_node("AnimationClip")

    g.connect(idle, mixer, 0, weight=0.1)
    g.connect(walk, mixer, 1, weight=0.7)
    g.connect(run, mixer, 2, weight=0.2)
    g.add_output("Animation", mixer)

    return g


# =============================================================================
# Example 2: Script jobs
# =============================================================================


def ik_rig() -> RuntimeGraph:
    """Two chained script jobs post-processing a clip."""
    g = RuntimeGraph("ik_rig")

    look_at = g.add_node("AnimationScriptPlayable", 1, NodeKind.SCRIPT, "LookAtJob")
    two_bone = g.add_node("AnimationScriptPlayable", 1, NodeKind.SCRIPT, "TwoBoneIKJob")
    clip = g.add_node("AnimationClip")

    g.connect(two_bone, look_at, 0)
    g.connect(clip, two_bone, 0)
    g.add_output("Animation", look_at)

    return g


# =============================================================================
# Example 3: Layered character with debug outputs
# =============================================================================


def layered_character() -> RuntimeGraph:
    """A layer mixer over a shared base pose, with an audio graph beside it.

    The base pose feeds both layers, and a debug output taps the upper body
    layer directly.
    """
    g = RuntimeGraph("character")

    layers = g.add_node("AnimationLayerMixer", input_count=2)
    lower = g.add_node("AnimationMixer", input_count=2)
    upper = g.add_node("AnimationMixer", input_count=2)
    base = g.add_node("AnimationClip")
    legs = g.add_node("AnimationClip")
    wave = g.add_node("AnimationClip")

    g.connect(lower, layers, 0)
    g.connect(upper, layers, 1, weight=0.5)
    g.connect(base, lower, 0, weight=0.4)
    g.connect(legs, lower, 1, weight=0.6)
    g.connect(base, upper, 0, weight=0.3)
    g.connect(wave, upper, 1, weight=0.7)

    audio = g.add_node("AudioClip")

    g.add_output("Animation", layers)
    g.add_output("UpperBodyDebug", upper)
    g.add_output("Audio", audio)
    g.add_output("Unused")

    return g


# =============================================================================
# Example 4: Cycles
# =============================================================================


def feedback_loop() -> RuntimeGraph:
    """Two mixers feeding each other; no node is a root."""
    g = RuntimeGraph("feedback")

    a = g.add_node("AnimationMixer", input_count=1)
    b = g.add_node("AnimationMixer", input_count=1)
    g.connect(b, a, 0)
    g.connect(a, b, 0)
    g.add_output("Animation", a)

    return g


# =============================================================================
# Running the view
# =============================================================================


def mirror(graph: RuntimeGraph, ticks: int = 3) -> GraphView:
    """Refresh a fresh view *ticks* times and run its idle callbacks."""
    view = GraphView()
    for _ in range(ticks):
        view.update(UpdateContext(graph=graph))
        view.surface.run_pending()
    return view


def main() -> None:
    """Mirror every example graph and save it as SVG."""
    for build in (locomotion_blend, ik_rig, layered_character):
        graph = build()
        view = mirror(graph)
        view.surface.save_svg(f"{graph.name}.svg")
        print(f"{graph.name}: {view!r}")

    with warnings.catch_warnings(record=True) as w:
        warnings.simplefilter("always", CycleWarning)
        view = mirror(feedback_loop())
    for warning in w:
        print(f"warning: {warning.message}")
    print(f"feedback: {view!r}")


if __name__ == "__main__":
    main()
