"""Continuity interleaving -- cutaway visuals over unbroken source audio.

In cutaway mode the audio is one continuous source: the caller's speaker
recordings played back to back. Cutaways swap the *picture* for library
footage while that audio keeps playing, so the audio timeline's length and
position never change.

The interleaver walks a cursor t over the source timeline [0, total):

  - Before the next insertion: a primary segment showing the speaker,
    trimmed to the same span of the recording it comes from.
  - At an insertion: a cutaway segment trimmed [0, d) into the cutaway
    footage, whose source_audio_window is the absolute span
    [start, start + d) of the original audio.
  - After the last insertion: primary footage through the end.

Primary spans that cross a recording boundary are split, one segment per
recording. No segment carries a transition: a transition would eat
duration and drift lip-sync-bearing footage out of step with its audio.

Invariant: the audio windows tile [0, total) exactly, so their durations
sum to the total source duration.
"""

from .models import AudioWindow, ContentItem, ContentRef, Diagnostic, Segment, SegmentRole


MIN_CUTAWAY_DURATION = 3.0
MIN_CUTAWAY_GAP = 3.0

_STAGE = "interleave"


def recording_offsets(recordings: list[ContentItem]) -> list[float]:
    """Absolute start of each recording on the concatenated source timeline."""
    offsets = []
    t = 0.0
    for rec in recordings:
        offsets.append(t)
        t += rec.duration
    return offsets


def total_source_duration(recordings: list[ContentItem]) -> float:
    return sum(rec.duration for rec in recordings)


def filter_insertions(
    insertions: list[tuple[dict, ContentItem]],
    total_duration: float,
    min_duration: float = MIN_CUTAWAY_DURATION,
    min_gap: float = MIN_CUTAWAY_GAP,
) -> tuple[list[dict], list[Diagnostic]]:
    """Clamp, validate, sort, and space out proposed cutaway insertions.

    Processing pipeline:
      1. Cap each duration at the cutaway item's own length and at the
         remaining source time.
      2. Drop insertions starting outside [0, total - min_duration] or
         shorter than min_duration.
      3. Sort by start time (stable).
      4. Drop any insertion starting before previous_end + min_gap, where
         previous is the last insertion kept.

    Args:
        insertions: Resolved (proposal, item) pairs. Each proposal carries
            'start' and 'duration'.
        total_duration: Length of the continuous source.
        min_duration: Shortest allowed cutaway.
        min_gap: Least speaker time between two cutaways.

    Returns:
        (kept, diagnostics). Each kept entry is a dict with start,
        end, duration, item, and the original proposal.
    """
    diagnostics = []
    candidates = []
    for proposal, item in insertions:
        start = float(proposal["start"])
        duration = float(proposal["duration"])
        if item.duration is not None:
            duration = min(duration, item.duration)
        end = min(start + duration, total_duration)
        duration = end - start

        if start < 0 or start > total_duration - min_duration:
            diagnostics.append(Diagnostic(
                stage=_STAGE,
                code="out_of_range",
                message=(
                    f"Cutaway '{item.id}' at {start:.2f}s does not fit in the "
                    f"{total_duration:.2f}s source; dropped"
                ),
                ref=item.id,
            ))
            continue
        if duration < min_duration:
            diagnostics.append(Diagnostic(
                stage=_STAGE,
                code="too_short",
                message=(
                    f"Cutaway '{item.id}' at {start:.2f}s lasts {duration:.2f}s "
                    f"(< {min_duration:.1f}s); dropped"
                ),
                ref=item.id,
            ))
            continue
        candidates.append({
            "start": start, "end": end, "duration": duration,
            "item": item, "proposal": proposal,
        })

    candidates.sort(key=lambda c: c["start"])

    kept = []
    previous_end = None
    for cand in candidates:
        if previous_end is not None and cand["start"] < previous_end + min_gap:
            diagnostics.append(Diagnostic(
                stage=_STAGE,
                code="too_close",
                message=(
                    f"Cutaway '{cand['item'].id}' at {cand['start']:.2f}s starts "
                    f"within {min_gap:.1f}s of the previous cutaway; dropped"
                ),
                ref=cand["item"].id,
            ))
            continue
        kept.append(cand)
        previous_end = cand["end"]

    return kept, diagnostics


def _primary_segments(
    recordings: list[ContentItem],
    offsets: list[float],
    start: float,
    end: float,
    first_index: int,
) -> list[Segment]:
    """Speaker segments covering [start, end), split at recording boundaries."""
    segments = []
    for rec, rec_start in zip(recordings, offsets):
        rec_end = rec_start + rec.duration
        piece_start = max(start, rec_start)
        piece_end = min(end, rec_end)
        if piece_end <= piece_start:
            continue
        segments.append(Segment(
            id=f"primary-{first_index + len(segments)}",
            role=SegmentRole.PRIMARY,
            source=ContentRef.from_item(rec),
            in_sec=piece_start - rec_start,
            out_sec=piece_end - rec_start,
            source_audio_window=AudioWindow(start=piece_start, end=piece_end),
            intent="Speaker on camera",
        ))
    return segments


def _cutaway_segment(insertion: dict, index: int) -> Segment:
    item = insertion["item"]
    start = insertion["start"]
    end = insertion["end"]
    return Segment(
        id=f"cutaway-{index}",
        role=SegmentRole.CUTAWAY,
        source=ContentRef.from_item(item),
        in_sec=0.0,
        out_sec=end - start,
        source_audio_window=AudioWindow(start=start, end=end),
        intent=insertion["proposal"].get("reason") or item.description or None,
        tags=list(item.tags),
    )


def interleave(
    recordings: list[ContentItem],
    insertions: list[tuple[dict, ContentItem]],
    min_duration: float = MIN_CUTAWAY_DURATION,
    min_gap: float = MIN_CUTAWAY_GAP,
) -> tuple[list[Segment], list[Diagnostic]]:
    """Build the alternating primary/cutaway segment list.

    Args:
        recordings: Caller-owned speaker recordings in playback order, each
            with a known positive duration.
        insertions: Resolved (proposal, item) cutaway insertions.
        min_duration: Shortest allowed cutaway.
        min_gap: Least speaker time between two cutaways.

    Returns:
        (segments, diagnostics). Zero surviving insertions yields the
        recordings at full length.
    """
    total = total_source_duration(recordings)
    offsets = recording_offsets(recordings)
    kept, diagnostics = filter_insertions(insertions, total, min_duration, min_gap)

    segments = []
    t = 0.0
    for insertion in kept:
        if insertion["start"] > t:
            segments.extend(
                _primary_segments(recordings, offsets, t, insertion["start"], len(segments))
            )
        segments.append(_cutaway_segment(insertion, len(segments)))
        t = insertion["end"]

    if t < total:
        segments.extend(_primary_segments(recordings, offsets, t, total, len(segments)))

    return segments, diagnostics
