"""Caption cues from explicit cue lists or word-timestamp transcripts.

Transcripts use the word-level JSON schema written by transcription tools:

    {"source": ..., "duration_s": ..., "words": [
        {"word": "Hello", "start": 0.0, "end": 0.4, "speaker": "SPEAKER_00"}, ...]}

Words are grouped ``words_per_block`` at a time into one cue spanning the
first word's start to the last word's end.
"""

import json
from pathlib import Path

from .models import CaptionCue


DEFAULT_WORDS_PER_BLOCK = 3


def load_transcript_words(path: str | Path) -> list[dict]:
    """Read the 'words' list from a transcript JSON file.

    Raises:
        FileNotFoundError: Missing transcript.
        ValueError: File has no 'words' list.
    """
    with open(path) as f:
        data = json.load(f)
    words = data.get("words") if isinstance(data, dict) else None
    if not isinstance(words, list):
        raise ValueError(f"Transcript {path}: missing 'words' list")
    return words


def cues_from_words(
    words: list[dict],
    words_per_block: int = DEFAULT_WORDS_PER_BLOCK,
) -> list[CaptionCue]:
    """Group transcript words into caption cues of words_per_block words."""
    if words_per_block < 1:
        raise ValueError(f"words_per_block must be >= 1, got {words_per_block}")

    cues = []
    for i in range(0, len(words), words_per_block):
        block = words[i:i + words_per_block]
        text = " ".join(str(w["word"]).strip() for w in block).strip()
        if not text:
            continue
        start = float(block[0]["start"])
        end = max(float(block[-1]["end"]), start)
        cues.append(CaptionCue(at=start, duration=end - start, text=text))
    return cues


def cues_from_dicts(raw_cues: list[dict], offset: float = 0.0) -> list[CaptionCue]:
    """Convert {start, end, text} dicts to cues, shifted by *offset*."""
    return [
        CaptionCue(
            at=float(c["start"]) + offset,
            duration=float(c["end"]) - float(c["start"]),
            text=str(c["text"]),
        )
        for c in raw_cues
    ]


def merge_recording_cues(
    per_recording: list[list[dict]],
    offsets: list[float],
) -> list[CaptionCue]:
    """Concatenate per-recording cue lists onto the joined source timeline.

    Each recording's cues are timed from that recording's own start; they
    move by the recording's offset within the concatenated source.
    """
    cues = []
    for raw_cues, offset in zip(per_recording, offsets):
        cues.extend(cues_from_dicts(raw_cues, offset))
    return cues
