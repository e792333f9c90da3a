"""Transition kinds and the playback time they consume.

A crossfade-style transition of duration d between segments A and B makes
the rendered output d shorter than A + B: the transition window is shared
footage, not appended footage. Every xfade kind overlaps this way. "none"
and "cut" are hard cuts and consume nothing.

The transition on a segment is its *outgoing* transition. The last
segment's transition is ignored (nothing follows it).
"""

from .models import Segment, Transition


DEFAULT_TRANSITION_DURATION = 0.5
MAX_TRANSITION_DURATION = 2.0

HARD_CUT_KINDS = {"none", "cut"}

XFADE_KINDS = {
    "fade", "fadeblack", "fadewhite", "dissolve",
    "wipeleft", "wiperight", "wipeup", "wipedown",
    "slideleft", "slideright", "slideup", "slidedown",
    "circlecrop", "circleopen", "circleclose",
    "pixelize", "radial",
    "smoothleft", "smoothright", "smoothup", "smoothdown",
}

VALID_TRANSITION_KINDS = HARD_CUT_KINDS | XFADE_KINDS

# User-facing presets and the xfade kind each one renders as.
TRANSITION_PRESETS = {
    "cut": "none",
    "fade": "fade",
    "slide": "slideleft",
    "wipe": "wipeleft",
}


def make_transition(kind: str | None, duration: float | None = None) -> Transition | None:
    """Build a Transition from a manifest kind/preset and optional duration.

    Returns None for absent kinds and hard cuts, so downstream code only
    ever sees transitions that actually overlap.

    Raises:
        ValueError: Unknown kind, or duration outside [0, 2].
    """
    if kind is None:
        return None
    kind = TRANSITION_PRESETS.get(kind, kind)
    if kind not in VALID_TRANSITION_KINDS:
        raise ValueError(
            f"Unknown transition '{kind}'. Valid: {sorted(VALID_TRANSITION_KINDS)}"
        )
    if kind in HARD_CUT_KINDS:
        return None

    if duration is None:
        duration = DEFAULT_TRANSITION_DURATION
    if not isinstance(duration, (int, float)) or not 0 <= duration <= MAX_TRANSITION_DURATION:
        raise ValueError(
            f"Transition duration must be in [0, {MAX_TRANSITION_DURATION}], got {duration!r}"
        )
    if duration == 0:
        return None
    return Transition(kind=kind, duration=float(duration))


def overlap_of(transition: Transition | None) -> float:
    """Playback time consumed by one transition (0 for hard cuts)."""
    if transition is None or transition.kind in HARD_CUT_KINDS:
        return 0.0
    return transition.duration


def transition_overlap(segments: list[Segment]) -> float:
    """Total playback time consumed by transitions between segments.

    Only interior transitions count: the final segment's outgoing
    transition has nothing to overlap with.
    """
    return sum(overlap_of(seg.transition) for seg in segments[:-1])
