"""reelcompose.common -- shared helpers for manifest parsing and timing math.

Contains: path variable resolution, aspect/resolution presets, tenth-second
rounding, word counting, and deterministic timeline ids.
"""

import hashlib
import json
import math
import re
import uuid


# ── Resolution presets ─────────────────────────────────────────────

ASPECT_RESOLUTIONS = {
    "landscape": (1920, 1080),
    "vertical": (1080, 1920),
    "square": (1080, 1080),
}

DEFAULT_FPS = 30

# Namespace for ids derived from request content.
TIMELINE_NAMESPACE = uuid.UUID("5f0c6a8e-7d1b-4c3e-9a52-6e1f0b3d2c71")


# ── Path utilities ─────────────────────────────────────────────────

def resolve_path_vars(text: str, paths: dict[str, str]) -> str:
    """Replace ${name} variables in a string using the paths dict."""
    def _replace(match):
        key = match.group(1)
        if key not in paths:
            raise ValueError(f"Unknown path variable: ${{{key}}}")
        return paths[key]
    return re.sub(r"\$\{(\w+)\}", _replace, text)


# ── Video settings ─────────────────────────────────────────────────

def resolve_resolution(video: dict) -> tuple[int, int]:
    """Return (width, height) from an explicit resolution or an aspect preset.

    An explicit ``resolution: [w, h]`` wins over ``aspect``. Without either,
    the landscape preset is used.
    """
    if "resolution" in video:
        res = video["resolution"]
        if (
            not isinstance(res, (list, tuple))
            or len(res) != 2
            or not all(isinstance(v, int) and v > 0 for v in res)
        ):
            raise ValueError(
                f"video.resolution must be [width, height] positive ints, got {res!r}"
            )
        return (res[0], res[1])

    aspect = video.get("aspect", "landscape")
    if aspect not in ASPECT_RESOLUTIONS:
        raise ValueError(
            f"Unknown aspect '{aspect}'. Valid: {sorted(ASPECT_RESOLUTIONS)}"
        )
    return ASPECT_RESOLUTIONS[aspect]


# ── Timing math ────────────────────────────────────────────────────

def round_tenth(value: float) -> float:
    """Round to one decimal place, halves away from zero.

    Python's round() uses banker's rounding (5.25 -> 5.2); durations are
    rounded half-up so 5.25 -> 5.3 regardless of the neighbouring digit.
    """
    if value < 0:
        return -round_tenth(-value)
    return math.floor(value * 10 + 0.5) / 10


def count_words(*texts: str | None) -> int:
    """Count whitespace-separated words across the given strings."""
    return sum(len(t.split()) for t in texts if t)


# ── Identifiers ────────────────────────────────────────────────────

def derive_timeline_id(payload: dict) -> str:
    """Derive a stable timeline id from the request payload.

    The same request always yields the same id, so composition stays
    deterministic without consulting a clock or random source.
    """
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    digest = hashlib.sha256(canonical.encode("utf-8")).hexdigest()
    return str(uuid.uuid5(TIMELINE_NAMESPACE, digest))
