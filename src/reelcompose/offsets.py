"""Track offset propagation -- wrap the core in lead-in/lead-out content.

Secondary tracks (narration, captions, sound effects, overlays, text
effects, source audio) are proposed relative to the start of the *core*
content. Once an optional lead-in is prepended, every one of them must
move by the lead-in duration, and the timeline grows to

    total = lead_in + core + lead_out

Background music is the exception: it underlays the whole timeline from 0.

Lead-in and lead-out join the core with hard cuts. When a lead-out is
appended, the last core segment's outgoing transition would become an
interior one and shorten the timeline, so it is cleared.
"""

from .models import (
    CaptionTrack,
    Diagnostic,
    DurationSummary,
    Segment,
    TrackEvent,
    Tracks,
)
from .normalize import effective_duration
from .transitions import transition_overlap


_STAGE = "offsets"


def offset_track(events: list[TrackEvent], offset: float) -> list[TrackEvent]:
    """Shift every event by *offset*. Pure: ``result[i].at == events[i].at + offset``."""
    return [event.model_copy(update={"at": event.at + offset}) for event in events]


def bound_events(
    events: list[TrackEvent],
    core_duration: float,
    label: str,
) -> tuple[list[TrackEvent], list[Diagnostic]]:
    """Keep events inside the core: drop late starts, clamp late ends.

    An event starting after the core ends has nothing to sit on and is
    dropped. One that starts inside but runs past the end is shortened to
    finish with the core.
    """
    kept = []
    diagnostics = []
    for event in events:
        ref = getattr(event, "ref", None) or getattr(event, "effect", None)
        if event.at > core_duration:
            diagnostics.append(Diagnostic(
                stage=_STAGE,
                code="event_out_of_range",
                message=(
                    f"{label} at {event.at:.2f}s starts after the core ends "
                    f"({core_duration:.2f}s); dropped"
                ),
                ref=ref,
            ))
            continue
        if event.at + event.duration > core_duration:
            clamped = core_duration - event.at
            diagnostics.append(Diagnostic(
                stage=_STAGE,
                code="event_clamped",
                message=(
                    f"{label} at {event.at:.2f}s shortened from "
                    f"{event.duration:.2f}s to {clamped:.2f}s"
                ),
                ref=ref,
            ))
            event = event.model_copy(update={"duration": clamped})
        kept.append(event)
    return kept, diagnostics


def _shift_tracks(tracks: Tracks, lead_in: float, total: float) -> Tracks:
    narration = tracks.narration
    if narration is not None:
        narration = narration.model_copy(
            update={"start_offset": narration.start_offset + lead_in}
        )

    music = tracks.music
    if music is not None:
        music = music.model_copy(update={"start_offset": 0.0, "duration": total})

    captions: CaptionTrack = tracks.captions.model_copy(update={
        "start_offset": tracks.captions.start_offset + lead_in,
        "cues": offset_track(tracks.captions.cues, lead_in),
    })

    return tracks.model_copy(update={
        "narration": narration,
        "music": music,
        "source_audio": [
            bed.model_copy(update={"start_offset": bed.start_offset + lead_in})
            for bed in tracks.source_audio
        ],
        "sound_effects": offset_track(tracks.sound_effects, lead_in),
        "image_overlays": offset_track(tracks.image_overlays, lead_in),
        "text_effects": offset_track(tracks.text_effects, lead_in),
        "captions": captions,
    })


def propagate_offsets(
    core: list[Segment],
    tracks: Tracks,
    target_duration: float,
    lead_in: Segment | None = None,
    lead_out: Segment | None = None,
) -> tuple[list[Segment], Tracks, DurationSummary, list[Diagnostic]]:
    """Attach lead-in/lead-out segments and shift tracks into place.

    Args:
        core: Finished core segment list.
        tracks: Secondary tracks timed relative to the core start.
        target_duration: The core target, recorded in the summary.
        lead_in: Optional intro segment (no outgoing transition).
        lead_out: Optional outro segment.

    Returns:
        (segments, tracks, durations, diagnostics).
    """
    diagnostics = []
    core = list(core)

    if lead_out is not None and core and core[-1].transition is not None:
        diagnostics.append(Diagnostic(
            stage=_STAGE,
            code="transition_cleared",
            message=(
                f"Cleared {core[-1].transition.kind} transition on '{core[-1].id}' "
                f"before the lead-out"
            ),
            ref=core[-1].id,
        ))
        core[-1] = core[-1].model_copy(update={"transition": None})

    core_duration = effective_duration(core)
    lead_in_duration = lead_in.visible_duration if lead_in is not None else 0.0
    lead_out_duration = lead_out.visible_duration if lead_out is not None else 0.0
    total = lead_in_duration + core_duration + lead_out_duration

    segments = []
    if lead_in is not None:
        segments.append(lead_in.model_copy(update={"transition": None}))
    segments.extend(core)
    if lead_out is not None:
        segments.append(lead_out.model_copy(update={"transition": None}))

    durations = DurationSummary(
        target=target_duration,
        core=core_duration,
        lead_in=lead_in_duration,
        lead_out=lead_out_duration,
        transition_overlap=transition_overlap(segments),
        total=total,
    )
    return segments, _shift_tracks(tracks, lead_in_duration, total), durations, diagnostics
