"""Composition request manifest loader.

Parses YAML manifests describing one composition request: the candidate
pool, the proposed segments (or cutaway-mode recordings and insertions),
optional lead-in/lead-out, and the secondary track proposals.

Request manifest schema:
  id: promo-001                 # optional; derived from content otherwise
  mode: standard                # "standard" (default) or "cutaway"
  video:
    aspect: landscape           # landscape | vertical | square
    fps: 30                     # or resolution: [1920, 1080]
  target_duration: 20.0         # required in standard mode
  user: user-42                 # optional, for lead-in/lead-out defaults
  paths:
    media: "/data/media"
  defaults:
    transition: fade            # global default outgoing transition
    transition_duration: 0.5
  candidates:                   # library items
    - {id: clip-001, duration: 8.0, url: "${media}/clip-001.mp4", tags: [city]}
  owned:                        # caller-owned items (may repeat)
    - {id: upload-1, duration: 12.0, url: "${media}/upload-1.mp4"}
  segments:                     # standard mode
    - ref: clip-001
      duration: 6.0
      in: 0.0                   # optional trim start
      transition: fade          # per-segment override ("none" for a cut)
      transition_duration: 0.5
  recordings:                   # cutaway mode: owned speaker recordings
    - ref: upload-1
      captions: [{start: 0.0, end: 1.2, text: "Hi there"}]
  insertions:                   # cutaway mode
    - {start: 5.0, duration: 4.0, ref: clip-001, reason: "city skyline"}
  lead_in: {ref: intro-1}       # optional explicit lead-in / lead-out
  lead_out: {ref: outro-1}
  narration: {ref: vo-1, url: "${media}/vo.mp3", volume: 1.0}
  music: {ref: track-1, volume: 0.3}
  captions:
    enabled: true
    burn_in: true
    words_per_block: 3
    font: Inter
    cues: [{start: 0.0, end: 2.0, text: "Welcome"}]
    transcript: "${media}/vo.transcript.json"
  sound_effects: [{ref: whoosh, at: 5.0, volume: 0.5}]
  image_overlays: [{ref: subscribe, at: 15.0, duration: 3.0, x: 80, y: 20, scale: 1.5}]
  text_effects: [{effect: lower-third-minimal, at: 2.0, header: "Jane", body: "Founder"}]
  libraries:
    music: [{id: track-1, url: ...}]
    sound_effects: [{id: whoosh, duration: 1.0, url: ...}]
    overlays: [{id: subscribe, url: ...}]
"""

import math
from pathlib import Path

import yaml

from .collaborators import parse_items
from .common import DEFAULT_FPS, resolve_path_vars, resolve_resolution
from .errors import InvalidTargetError
from .transitions import make_transition


VALID_MODES = {"standard", "cutaway"}


def _is_number(value) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def _number(entry: dict, field: str, prefix: str, minimum: float = 0.0, strict: bool = False) -> float:
    """Fetch a required numeric field, checking it against a lower bound."""
    if field not in entry:
        raise ValueError(f"{prefix}: missing required field '{field}'")
    value = entry[field]
    if not _is_number(value) or value < minimum or (strict and value == minimum):
        bound = ">" if strict else ">="
        raise ValueError(f"{prefix}: {field} must be {bound} {minimum}, got {value!r}")
    return float(value)


def _ref(entry, prefix: str) -> str:
    if not isinstance(entry, dict) or "ref" not in entry:
        raise ValueError(f"{prefix}: missing required field 'ref'")
    return str(entry["ref"])


def _volume(entry: dict, prefix: str, default: float) -> float:
    volume = entry.get("volume", default)
    if not _is_number(volume) or not 0 <= volume <= 1:
        raise ValueError(f"{prefix}: volume must be in [0, 1], got {volume!r}")
    return float(volume)


# ── Sections ──────────────────────────────────────────────────────


def _parse_video(raw: dict) -> dict:
    video = raw.get("video", {}) or {}
    width, height = resolve_resolution(video)
    fps = video.get("fps", DEFAULT_FPS)
    if not isinstance(fps, int) or fps <= 0:
        raise ValueError(f"video.fps must be a positive int, got {fps!r}")
    aspect = None if "resolution" in video else video.get("aspect", "landscape")
    return {"width": width, "height": height, "fps": fps, "aspect": aspect}


def _parse_segments(raw_segments: list, defaults: dict) -> list[dict]:
    """Validate proposed segments, applying global transition defaults."""
    default_kind = defaults.get("transition")
    default_duration = defaults.get("transition_duration")

    segments = []
    for i, entry in enumerate(raw_segments or []):
        prefix = f"Segment {i}"
        ref = _ref(entry, prefix)
        duration = _number(entry, "duration", prefix, strict=True)
        in_sec = _number(entry, "in", prefix) if "in" in entry else 0.0

        kind = entry.get("transition", default_kind)
        t_duration = entry.get("transition_duration", default_duration)
        try:
            transition = make_transition(kind, t_duration)
        except ValueError as e:
            raise ValueError(f"{prefix}: {e}") from e

        segments.append({
            "ref": ref,
            "duration": duration,
            "in": in_sec,
            "transition": transition,
            "intent": entry.get("intent"),
        })
    return segments


def _parse_cues(raw_cues: list, prefix: str) -> list[dict]:
    cues = []
    for j, cue in enumerate(raw_cues or []):
        cue_prefix = f"{prefix}, cue {j}"
        start = _number(cue, "start", cue_prefix)
        end = _number(cue, "end", cue_prefix)
        if end < start:
            raise ValueError(f"{cue_prefix}: end ({end}) must be >= start ({start})")
        if "text" not in cue:
            raise ValueError(f"{cue_prefix}: missing required field 'text'")
        cues.append({"start": start, "end": end, "text": str(cue["text"])})
    return cues


def _parse_recordings(raw_recordings: list) -> list[dict]:
    recordings = []
    for i, entry in enumerate(raw_recordings or []):
        prefix = f"Recording {i}"
        recordings.append({
            "ref": _ref(entry, prefix),
            "captions": _parse_cues(entry.get("captions", []), prefix),
        })
    return recordings


def _parse_insertions(raw_insertions: list) -> list[dict]:
    insertions = []
    for i, entry in enumerate(raw_insertions or []):
        prefix = f"Insertion {i}"
        insertions.append({
            "ref": _ref(entry, prefix),
            "start": _number(entry, "start", prefix),
            "duration": _number(entry, "duration", prefix, strict=True),
            "reason": entry.get("reason"),
        })
    return insertions


def _parse_captions(raw: dict | None, paths: dict) -> dict:
    raw = raw or {}
    words_per_block = raw.get("words_per_block", 3)
    if not isinstance(words_per_block, int) or words_per_block < 1:
        raise ValueError(
            f"captions.words_per_block must be a positive int, got {words_per_block!r}"
        )
    transcript = raw.get("transcript")
    if transcript is not None:
        transcript = resolve_path_vars(str(transcript), paths)
    enabled = bool(raw.get("enabled", False))
    return {
        "enabled": enabled,
        "burn_in": bool(raw.get("burn_in", enabled)),
        "words_per_block": words_per_block,
        "font": str(raw.get("font", "Inter")),
        "cues": _parse_cues(raw.get("cues", []), "captions"),
        "transcript": transcript,
    }


def _parse_events(raw_events: list, label: str, keyed: str = "ref") -> list[dict]:
    """Validate timed events: a key field plus a non-negative 'at'."""
    events = []
    for i, entry in enumerate(raw_events or []):
        prefix = f"{label} {i}"
        if not isinstance(entry, dict) or keyed not in entry:
            raise ValueError(f"{prefix}: missing required field '{keyed}'")
        event = dict(entry)
        event["at"] = _number(entry, "at", prefix)
        if "volume" in entry:
            event["volume"] = _volume(entry, prefix, 0.5)
        if "duration" in entry:
            event["duration"] = _number(entry, "duration", prefix)
        events.append(event)
    return events


def _parse_overlays(raw_overlays: list) -> list[dict]:
    """Validate image overlay events: position in percent, scale, and size."""
    overlays = _parse_events(raw_overlays, "Overlay")
    for i, overlay in enumerate(overlays):
        prefix = f"Overlay {i}"

        for axis in ("x", "y"):
            value = overlay.get(axis)
            if value is not None and (not _is_number(value) or not 0 <= value <= 100):
                raise ValueError(f"{prefix}: {axis} must be in [0, 100], got {value!r}")

        if "scale" in overlay:
            overlay["scale"] = _number(overlay, "scale", prefix, strict=True)

        for dim in ("width", "height"):
            value = overlay.get(dim)
            if value is not None and (
                not isinstance(value, int) or isinstance(value, bool) or value <= 0
            ):
                raise ValueError(f"{prefix}: {dim} must be a positive int, got {value!r}")
    return overlays


def _parse_bed(raw: dict | None, label: str, default_volume: float, paths: dict) -> dict | None:
    if not raw:
        return None
    bed = {"ref": _ref(raw, label), "volume": _volume(raw, label, default_volume)}
    if raw.get("url") is not None:
        bed["url"] = resolve_path_vars(str(raw["url"]), paths)
    if raw.get("duration") is not None:
        bed["duration"] = _number(raw, "duration", label)
    return bed


# ── Entry points ──────────────────────────────────────────────────


def normalize_request(raw: dict) -> dict:
    """Validate and normalize a request dict (already parsed from YAML/JSON).

    Processing pipeline:
      1. Validate mode and video settings.
      2. Resolve ${path} variables in urls and transcript paths.
      3. Build candidate, owned, and library ContentItems.
      4. Apply global transition defaults to each segment.
      5. Validate recordings, insertions, and every track proposal.

    Returns:
        Normalized request dict for assembler.compose_request.

    Raises:
        ValueError: Missing/invalid fields.
        InvalidTargetError: target_duration present but not a finite number.
    """
    if not isinstance(raw, dict):
        raise ValueError("Request manifest: top level must be a mapping")

    mode = raw.get("mode", "standard")
    if mode not in VALID_MODES:
        raise ValueError(
            f"Request manifest: invalid mode '{mode}'. Valid: {sorted(VALID_MODES)}"
        )

    target = raw.get("target_duration")
    if target is not None and not _is_number(target):
        raise InvalidTargetError(f"target_duration must be a finite number, got {target!r}")

    paths = raw.get("paths", {}) or {}
    defaults = raw.get("defaults", {}) or {}
    libraries = raw.get("libraries", {}) or {}

    config = {
        "id": str(raw["id"]) if raw.get("id") is not None else None,
        "mode": mode,
        "video": _parse_video(raw),
        "target_duration": float(target) if target is not None else None,
        "user": raw.get("user"),
        "candidates": parse_items(raw.get("candidates", []), paths, label="Candidate"),
        "owned": parse_items(raw.get("owned", []), paths, owned=True, label="Owned item"),
        "segments": _parse_segments(raw.get("segments", []), defaults),
        "recordings": _parse_recordings(raw.get("recordings", [])),
        "insertions": _parse_insertions(raw.get("insertions", [])),
        "lead_in": {"ref": _ref(raw["lead_in"], "lead_in")} if raw.get("lead_in") else None,
        "lead_out": {"ref": _ref(raw["lead_out"], "lead_out")} if raw.get("lead_out") else None,
        "narration": _parse_bed(raw.get("narration"), "narration", 1.0, paths),
        "music": _parse_bed(raw.get("music"), "music", 0.3, paths),
        "captions": _parse_captions(raw.get("captions"), paths),
        "sound_effects": _parse_events(raw.get("sound_effects", []), "Sound effect"),
        "image_overlays": _parse_overlays(raw.get("image_overlays", [])),
        "text_effects": _parse_events(raw.get("text_effects", []), "Text effect", keyed="effect"),
        "libraries": {
            "music": parse_items(libraries.get("music", []), paths, label="Music"),
            "sound_effects": parse_items(
                libraries.get("sound_effects", []), paths, label="Sound effect item"
            ),
            "overlays": parse_items(libraries.get("overlays", []), paths, label="Overlay item"),
        },
    }
    return config


def load_request_manifest(manifest_path: str | Path) -> dict:
    """Load, validate, and normalize a composition request manifest.

    Raises:
        FileNotFoundError: Missing manifest file.
        ValueError: Missing/invalid fields.
    """
    with open(manifest_path) as f:
        raw = yaml.safe_load(f)
    return normalize_request(raw)


def validate_request_paths(config: dict) -> None:
    """Check that local files referenced by the request exist on disk.

    Only plain filesystem paths are checked; URLs with a scheme are skipped.

    Raises:
        FileNotFoundError: Lists all missing files.
    """
    candidates = [item.url for item in config["owned"] + config["candidates"] if item.url]
    if config["captions"]["transcript"]:
        candidates.append(config["captions"]["transcript"])

    missing = [p for p in candidates if "://" not in p and not Path(p).exists()]
    if missing:
        msg = f"Missing {len(missing)} file(s):\n"
        for p in missing:
            msg += f"  - {p}\n"
        raise FileNotFoundError(msg)
