"""Timeline assembly -- run the composition stages for one request.

Standard mode:
  1. Validate the target and the candidate pool.
  2. Resolve proposed segment references (drop unknown, dedup library).
  3. Normalize durations so the effective length hits the target.
  4. Build secondary tracks and keep their events inside the core.
  5. Resolve lead-in/lead-out and propagate the offsets.

Cutaway mode replaces steps 2-3: the caller's recordings form one
continuous source, insertion references are resolved, and the interleaver
lays cutaways over the source without changing its length.

References are resolved before normalizing or interleaving. Dropping a
reference afterwards would leave a gap in the target duration or in the
source audio coverage.

Every stage is a pure function returning (result, diagnostics); the
assembler concatenates the diagnostics in stage order. Nothing here reads
a clock or a random source, so identical requests give identical output.
"""

import math

from .captions import cues_from_dicts, cues_from_words, load_transcript_words, merge_recording_cues
from .collaborators import SettingsLookup
from .common import derive_timeline_id
from .errors import InvalidTargetError
from .interleave import (
    MIN_CUTAWAY_DURATION,
    MIN_CUTAWAY_GAP,
    interleave,
    recording_offsets,
    total_source_duration,
)
from .models import (
    CaptionTrack,
    CompositionResult,
    ContentItem,
    ContentRef,
    Diagnostic,
    Segment,
    SegmentRole,
    SourceKind,
    Timeline,
    Tracks,
    VideoSettings,
)
from .normalize import DURATION_TOLERANCE, MIN_SEGMENT_DURATION, effective_duration, normalize_durations
from .offsets import bound_events, propagate_offsets
from .resolve import CandidatePool, require_pool, resolve_references
from .tracks import (
    build_image_overlays,
    build_music,
    build_narration,
    build_sound_effects,
    build_source_audio,
    build_text_effects,
)
from .transitions import overlap_of, transition_overlap


_STAGE = "assemble"

_BOOKENDS = (
    ("lead_in", SegmentRole.LEAD_IN),
    ("lead_out", SegmentRole.LEAD_OUT),
)


def build_pool(config: dict, retrieved: list[ContentItem] = ()) -> CandidatePool:
    """Candidate pool from a request's items plus any retrieved library items.

    Items listed in the request take precedence over retrieved ones with
    the same id.
    """
    library = {item.id: item for item in retrieved}
    library.update({item.id: item for item in config["candidates"]})
    return CandidatePool(library=library.values(), owned=config["owned"])


# ── Shared stages ─────────────────────────────────────────────────


def _check_trims(segments: list[Segment], pool: CandidatePool) -> list[Diagnostic]:
    """Flag segments whose trim window runs past their item's known length."""
    diagnostics = []
    for seg in segments:
        item = pool.get(seg.source.id)
        if item is None or item.duration is None:
            continue
        if seg.out_sec > item.duration + DURATION_TOLERANCE:
            diagnostics.append(Diagnostic(
                stage=_STAGE,
                code="trim_exceeds_source",
                message=(
                    f"Segment '{seg.id}' ends at {seg.out_sec:.2f}s but "
                    f"'{item.id}' is only {item.duration:.2f}s long"
                ),
                ref=item.id,
            ))
    return diagnostics


def _lookup_bookend_refs(
    config: dict,
    settings: SettingsLookup | None,
) -> tuple[dict, list[Diagnostic]]:
    refs = {key: (config.get(key) or {}).get("ref") for key, _ in _BOOKENDS}
    user = config.get("user")
    if settings is None or not user or all(refs.values()):
        return refs, []

    try:
        defaults = settings.get_user_defaults(user) or {}
    except (OSError, LookupError, ValueError) as e:
        return refs, [Diagnostic(
            stage=_STAGE,
            code="settings_unavailable",
            message=f"User defaults for '{user}' unavailable ({e}); no lead-in/lead-out",
            ref=user,
        )]

    for key in refs:
        refs[key] = refs[key] or defaults.get(key)
    return refs, []


def resolve_bookends(
    config: dict,
    pool: CandidatePool,
    settings: SettingsLookup | None = None,
    used: set[str] | None = None,
) -> tuple[Segment | None, Segment | None, list[Diagnostic]]:
    """Lead-in and lead-out segments from explicit refs or user defaults.

    An explicit ref in the request wins over the user's default. Anything
    unavailable (unknown ref, no known duration, failed lookup) degrades
    to no bookend plus a diagnostic.
    """
    refs, diagnostics = _lookup_bookend_refs(config, settings)

    bookends = {}
    for key, role in _BOOKENDS:
        ref = refs[key]
        if not ref:
            bookends[key] = None
            continue
        resolved, diags = resolve_references([{"ref": ref}], pool, allow_empty=True, used=used)
        diagnostics.extend(diags)
        if not resolved:
            bookends[key] = None
            continue
        item = resolved[0][1]
        if not item.duration:
            diagnostics.append(Diagnostic(
                stage=_STAGE,
                code="bookend_unavailable",
                message=f"{role.value} '{item.id}' has no known duration; skipped",
                ref=item.id,
            ))
            bookends[key] = None
            continue
        bookends[key] = Segment(
            id=role.value,
            role=role,
            source=ContentRef.from_item(item),
            in_sec=0.0,
            out_sec=item.duration,
            tags=[role.value],
        )
    return bookends["lead_in"], bookends["lead_out"], diagnostics


def _caption_cues(captions: dict, extra_cues: list | None = None) -> list:
    cues = list(extra_cues or [])
    cues.extend(cues_from_dicts(captions["cues"]))
    if captions["transcript"]:
        words = load_transcript_words(captions["transcript"])
        cues.extend(cues_from_words(words, captions["words_per_block"]))
    return sorted(cues, key=lambda c: c.at)


def build_tracks(
    config: dict,
    pool: CandidatePool,
    core_duration: float,
    source_audio: list | None = None,
    recording_cues: list | None = None,
) -> tuple[Tracks, list[Diagnostic]]:
    """All secondary tracks, timed from the core start and bounded by it."""
    libraries = config["libraries"]
    diagnostics = []

    music, diags = build_music(config["music"], libraries["music"])
    diagnostics.extend(diags)

    sound_effects, diags = build_sound_effects(config["sound_effects"], libraries["sound_effects"])
    diagnostics.extend(diags)
    sound_effects, diags = bound_events(sound_effects, core_duration, "Sound effect")
    diagnostics.extend(diags)

    overlays, diags = build_image_overlays(config["image_overlays"], libraries["overlays"])
    diagnostics.extend(diags)
    overlays, diags = bound_events(overlays, core_duration, "Overlay")
    diagnostics.extend(diags)

    text_effects, diags = build_text_effects(config["text_effects"])
    diagnostics.extend(diags)
    text_effects, diags = bound_events(text_effects, core_duration, "Text effect")
    diagnostics.extend(diags)

    captions = config["captions"]
    cues, diags = bound_events(_caption_cues(captions, recording_cues), core_duration, "Caption")
    diagnostics.extend(diags)

    tracks = Tracks(
        narration=build_narration(config["narration"], pool.get),
        music=music,
        source_audio=source_audio or [],
        sound_effects=sound_effects,
        image_overlays=overlays,
        text_effects=text_effects,
        captions=CaptionTrack(
            enabled=captions["enabled"],
            burn_in=captions["burn_in"],
            words_per_block=captions["words_per_block"],
            font=captions["font"],
            cues=cues,
        ),
    )
    return tracks, diagnostics


def _finish(
    config: dict,
    core: list[Segment],
    tracks: Tracks,
    target: float,
    pool: CandidatePool,
    settings: SettingsLookup | None,
    used: set[str],
    diagnostics: list[Diagnostic],
) -> CompositionResult:
    lead_in, lead_out, diags = resolve_bookends(config, pool, settings, used)
    diagnostics.extend(diags)

    segments, tracks, durations, diags = propagate_offsets(core, tracks, target, lead_in, lead_out)
    diagnostics.extend(diags)

    video = VideoSettings(**config["video"])
    timeline_id = config.get("id") or derive_timeline_id({
        "mode": config["mode"],
        "video": video.model_dump(mode="json"),
        "segments": [seg.model_dump(mode="json") for seg in segments],
        "tracks": tracks.model_dump(mode="json"),
    })

    timeline = Timeline(
        id=timeline_id,
        mode=config["mode"],
        video=video,
        segments=segments,
        tracks=tracks,
        durations=durations,
    )
    return CompositionResult(timeline=timeline, diagnostics=diagnostics)


# ── Modes ─────────────────────────────────────────────────────────


def compose_standard(
    config: dict,
    pool: CandidatePool,
    settings: SettingsLookup | None = None,
    min_duration: float = MIN_SEGMENT_DURATION,
    tolerance: float = DURATION_TOLERANCE,
) -> CompositionResult:
    """Compose proposed segments to an exact target duration.

    Raises:
        InvalidTargetError: target_duration missing or not positive.
        EmptyCandidatePoolError: Pool holds no items.
        NoValidContentError: No proposed segment resolved.
    """
    target = config.get("target_duration")
    if target is None or not math.isfinite(target) or target <= 0:
        raise InvalidTargetError(
            f"Standard composition needs a positive, finite target_duration, got {target!r}"
        )
    require_pool(pool)

    used = set()
    resolved, diagnostics = resolve_references(config["segments"], pool, used=used)

    proposed = [
        Segment(
            id=f"segment-{i}",
            role=SegmentRole.PRIMARY,
            source=ContentRef.from_item(item),
            in_sec=proposal["in"],
            out_sec=proposal["in"] + proposal["duration"],
            transition=proposal["transition"],
            intent=proposal.get("intent") or item.description or None,
            tags=list(item.tags),
        )
        for i, (proposal, item) in enumerate(resolved)
    ]

    core, diags = normalize_durations(proposed, target, min_duration, tolerance)
    diagnostics.extend(diags)
    diagnostics.extend(_check_trims(core, pool))

    tracks, diags = build_tracks(config, pool, effective_duration(core))
    diagnostics.extend(diags)

    return _finish(config, core, tracks, target, pool, settings, used, diagnostics)


def _recordings(config: dict, pool: CandidatePool) -> list[ContentItem]:
    if not config["recordings"]:
        raise InvalidTargetError("Cutaway composition needs at least one source recording")

    recordings = []
    for i, entry in enumerate(config["recordings"]):
        item = pool.get(entry["ref"])
        if item is None or not item.owned:
            raise InvalidTargetError(
                f"Recording {i}: '{entry['ref']}' is not a caller-owned item"
            )
        if not item.duration:
            raise InvalidTargetError(
                f"Recording {i}: '{item.id}' has no known duration (probe it first)"
            )
        recordings.append(item)
    return recordings


def compose_cutaway(
    config: dict,
    pool: CandidatePool,
    settings: SettingsLookup | None = None,
    min_duration: float = MIN_CUTAWAY_DURATION,
    min_gap: float = MIN_CUTAWAY_GAP,
) -> CompositionResult:
    """Compose speaker recordings with cutaways over their unbroken audio.

    The core duration is always the total recording length; a
    target_duration in the request is not used to rescale anything.

    Raises:
        EmptyCandidatePoolError: Pool holds no items.
        InvalidTargetError: No usable source recording.
    """
    require_pool(pool)
    recordings = _recordings(config, pool)
    offsets = recording_offsets(recordings)
    total = total_source_duration(recordings)

    diagnostics = []
    target = config.get("target_duration")
    if target is not None and abs(target - total) > DURATION_TOLERANCE:
        diagnostics.append(Diagnostic(
            stage=_STAGE,
            code="target_ignored",
            message=(
                f"Cutaway timelines follow the {total:.2f}s source; "
                f"target {target:.2f}s not applied"
            ),
        ))

    used = set()
    resolved, diags = resolve_references(config["insertions"], pool, allow_empty=True, used=used)
    diagnostics.extend(diags)

    core, diags = interleave(recordings, resolved, min_duration, min_gap)
    diagnostics.extend(diags)

    recording_cues = merge_recording_cues(
        [entry["captions"] for entry in config["recordings"]], offsets
    )
    tracks, diags = build_tracks(
        config, pool, total,
        source_audio=build_source_audio(recordings, offsets),
        recording_cues=recording_cues,
    )
    diagnostics.extend(diags)

    return _finish(config, core, tracks, total, pool, settings, used, diagnostics)


def compose_request(
    config: dict,
    pool: CandidatePool | None = None,
    settings: SettingsLookup | None = None,
) -> CompositionResult:
    """Compose a normalized request (see request_manifest.normalize_request)."""
    if pool is None:
        pool = build_pool(config)
    if config["mode"] == "cutaway":
        return compose_cutaway(config, pool, settings)
    return compose_standard(config, pool, settings)


# ── Inspection ────────────────────────────────────────────────────


def segment_start_times(timeline: Timeline) -> list[float]:
    """Timeline start of each segment, with transition overlap folded in."""
    starts = []
    t = 0.0
    for seg in timeline.segments:
        starts.append(t)
        t += seg.visible_duration - overlap_of(seg.transition)
    return starts


def segment_at(timeline: Timeline, t: float) -> Segment | None:
    """Segment on screen at time *t*.

    During a transition both neighbours are visible; the incoming one is
    returned.
    """
    if t < 0 or t >= timeline.durations.total:
        return None
    current = None
    for seg, start in zip(timeline.segments, segment_start_times(timeline)):
        if start > t:
            break
        current = seg
    return current


def validate_timeline(timeline: Timeline, tolerance: float = DURATION_TOLERANCE) -> list[str]:
    """Check a finished timeline's invariants. Returns violations (empty if valid)."""
    problems = []
    segments = timeline.segments
    durations = timeline.durations

    if not segments:
        return ["Timeline has no segments"]

    for seg in segments:
        if seg.visible_duration <= 0:
            problems.append(f"Segment '{seg.id}': visible duration {seg.visible_duration} <= 0")

    effective = sum(seg.visible_duration for seg in segments) - transition_overlap(segments)
    if abs(effective - durations.total) > tolerance:
        problems.append(
            f"Effective duration {effective:.3f}s != total {durations.total:.3f}s"
        )

    parts = durations.lead_in + durations.core + durations.lead_out
    if abs(parts - durations.total) > 1e-6:
        problems.append(
            f"lead_in + core + lead_out = {parts:.3f}s != total {durations.total:.3f}s"
        )

    seen = set()
    for seg in segments:
        if seg.source.kind == SourceKind.LIBRARY:
            if seg.source.id in seen:
                problems.append(f"Library item '{seg.source.id}' used more than once")
            seen.add(seg.source.id)

    tracks = timeline.tracks
    events = (
        list(tracks.sound_effects) + list(tracks.image_overlays)
        + list(tracks.text_effects) + list(tracks.captions.cues)
    )
    for event in events:
        if event.at < 0 or event.at > durations.total:
            problems.append(
                f"Track event at {event.at:.2f}s outside [0, {durations.total:.2f}]"
            )

    if timeline.mode == "cutaway":
        core = [s for s in segments if s.role in (SegmentRole.PRIMARY, SegmentRole.CUTAWAY)]
        for seg in core:
            if seg.transition is not None:
                problems.append(f"Segment '{seg.id}': cutaway timelines carry no transitions")
        windows = [s.source_audio_window for s in core]
        if any(w is None for w in windows):
            problems.append("Cutaway timeline segment without a source audio window")
        else:
            position = 0.0
            for seg, window in zip(core, windows):
                if abs(window.start - position) > 1e-6:
                    problems.append(
                        f"Segment '{seg.id}': audio window starts at {window.start:.3f}s, "
                        f"expected {position:.3f}s"
                    )
                position = window.end
            if abs(position - durations.core) > 1e-6:
                problems.append(
                    f"Audio windows cover {position:.3f}s of a {durations.core:.3f}s source"
                )
    return problems
