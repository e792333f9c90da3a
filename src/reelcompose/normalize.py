"""Duration normalization -- make proposed segments hit an exact target.

Upstream selection proposes segment durations that rarely add up. The
rendered length of a segment list is

    sum(visible durations) - transition overlap

so to land on ``target`` the visible durations must sum to
``target + overlap``. Normalization:

  1. Compute the transition overlap (interior transitions only).
  2. adjusted_target = target + overlap.
  3. Within tolerance already? Return the segments unchanged.
  4. Scale every duration by adjusted_target / current_sum, rounded to
     one decimal, never below the minimum segment duration.
  5. Put the rounding residual on the last segment.
  6. Final guard: if the effective duration still misses the target,
     force-adjust the last segment by the exact remainder.

The minimum wins over exact arithmetic: with a very short target and many
segments the result may legitimately run longer than the target. The
residual on the last segment has no upper bound, so pathological inputs
can leave one long final segment.
"""

from .common import round_tenth
from .models import Diagnostic, Segment
from .transitions import transition_overlap


MIN_SEGMENT_DURATION = 2.0
DURATION_TOLERANCE = 0.05

_STAGE = "normalize"


def effective_duration(segments: list[Segment]) -> float:
    """Rendered length of a segment list once transitions overlap."""
    return sum(seg.visible_duration for seg in segments) - transition_overlap(segments)


def normalize_durations(
    segments: list[Segment],
    target_duration: float,
    min_duration: float = MIN_SEGMENT_DURATION,
    tolerance: float = DURATION_TOLERANCE,
) -> tuple[list[Segment], list[Diagnostic]]:
    """Rescale segment durations so the rendered length equals the target.

    Each segment keeps its in point; only the out point moves. A list
    already within tolerance of the target is returned as is, so
    min_duration applies only to segments that actually get rescaled.

    Args:
        segments: Proposed segments, in playback order.
        target_duration: Required rendered length in seconds.
        min_duration: No segment is scaled below this.
        tolerance: Allowed deviation from the target.

    Returns:
        (segments, diagnostics). Never raises; an empty input returns an
        empty list.
    """
    if not segments:
        return [], []

    diagnostics = []
    overlap = transition_overlap(segments)
    adjusted_target = target_duration + overlap

    durations = [seg.visible_duration for seg in segments]
    current_total = sum(durations)

    if abs(adjusted_target - current_total) < tolerance:
        return list(segments), diagnostics

    # Scale proportionally. Degenerate all-zero input splits evenly.
    if current_total > 0:
        factor = adjusted_target / current_total
        durations = [max(min_duration, round_tenth(d * factor)) for d in durations]
    else:
        share = round_tenth(adjusted_target / len(durations))
        durations = [max(min_duration, share) for _ in durations]

    direction = "extended" if adjusted_target > current_total else "shortened"
    diagnostics.append(Diagnostic(
        stage=_STAGE,
        code=direction,
        message=(
            f"Scaled {len(durations)} segments from {current_total:.2f}s to "
            f"{sum(durations):.2f}s (target {target_duration:.2f}s + "
            f"{overlap:.2f}s transition overlap)"
        ),
    ))

    # Rounding residual goes onto the last segment.
    residual = adjusted_target - sum(durations)
    if abs(residual) > tolerance:
        durations[-1] = max(min_duration, durations[-1] + residual)
        diagnostics.append(Diagnostic(
            stage=_STAGE,
            code="residual",
            message=f"Moved {residual:+.3f}s rounding residual onto the last segment",
            ref=segments[-1].id,
        ))

    # Final guard against whatever the clamp left behind.
    effective = sum(durations) - overlap
    if abs(effective - target_duration) > tolerance:
        durations[-1] = max(min_duration, durations[-1] + (target_duration - effective))
        effective = sum(durations) - overlap
        if abs(effective - target_duration) > tolerance:
            diagnostics.append(Diagnostic(
                stage=_STAGE,
                code="target_unreachable",
                message=(
                    f"Minimum segment duration {min_duration:.1f}s keeps the "
                    f"timeline at {effective:.2f}s (target {target_duration:.2f}s)"
                ),
            ))

    normalized = [
        seg.with_duration(round(d, 3)) for seg, d in zip(segments, durations)
    ]
    return normalized, diagnostics
