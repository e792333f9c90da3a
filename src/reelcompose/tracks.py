"""Secondary track builders -- audio beds and time-indexed events.

Each builder validates proposals from upstream selection against the
library they refer to. Unknown references are dropped with a diagnostic;
none of them is fatal. All times are relative to the core start; lead-in
offsets are applied later by offsets.propagate_offsets.
"""

from .common import count_words
from .models import (
    AudioBed,
    ContentItem,
    Diagnostic,
    ImageOverlayEvent,
    SoundEffectEvent,
    TextEffectEvent,
)


DEFAULT_NARRATION_VOLUME = 1.0
DEFAULT_MUSIC_VOLUME = 0.3
DEFAULT_SFX_VOLUME = 0.5
DEFAULT_OVERLAY_DURATION = 3.0

# On-screen text reading time.
SECONDS_PER_WORD = 0.4
MIN_TEXT_EFFECT_DURATION = 2.0
TEXT_EFFECT_ANIMATION_PAD = 1.0

TEXT_EFFECTS = {
    "lower-third-minimal",
    "lower-third-slide-box",
    "lower-third-corner-badge",
    "slide-box-left",
    "slide-box-right",
    "letterbox-with-text",
    "text-center-pop",
    "text-typewriter",
    "callout-highlight-box",
    "corner-accents",
    "border-glow",
    "social-subscribe-button",
}

_STAGE = "tracks"


def _index(items: list[ContentItem]) -> dict[str, ContentItem]:
    return {item.id: item for item in items}


def _unknown(kind: str, i: int, ref) -> Diagnostic:
    return Diagnostic(
        stage=_STAGE,
        code="unknown_ref",
        message=f"{kind} {i}: '{ref}' is not in the library; skipped",
        ref=ref,
    )


# ── Audio beds ────────────────────────────────────────────────────


def build_narration(proposal: dict | None, pool_lookup) -> AudioBed | None:
    """Narration bed from a {ref, url?, duration?, volume?} proposal.

    Narration comes from a synthesis step rather than the candidate pool,
    so an unknown ref is kept as given; a pooled ref fills in url and
    duration from the item.
    """
    if not proposal:
        return None
    item = pool_lookup(proposal["ref"])
    return AudioBed(
        ref=proposal["ref"],
        url=proposal.get("url") or (item.url if item else None),
        duration=proposal.get("duration") or (item.duration if item else None),
        volume=proposal.get("volume", DEFAULT_NARRATION_VOLUME),
    )


def build_music(
    proposal: dict | None,
    library: list[ContentItem],
) -> tuple[AudioBed | None, list[Diagnostic]]:
    """Background music bed, validated against the music library."""
    if not proposal:
        return None, []
    item = _index(library).get(proposal["ref"])
    if item is None:
        return None, [_unknown("Music", 0, proposal["ref"])]
    return AudioBed(
        ref=item.id,
        url=item.url,
        volume=proposal.get("volume", DEFAULT_MUSIC_VOLUME),
    ), []


def build_source_audio(recordings: list[ContentItem], offsets: list[float]) -> list[AudioBed]:
    """One full-volume bed per speaker recording, at its concatenated start."""
    return [
        AudioBed(ref=rec.id, url=rec.url, volume=1.0, start_offset=offset, duration=rec.duration)
        for rec, offset in zip(recordings, offsets)
    ]


# ── Events ────────────────────────────────────────────────────────


def build_sound_effects(
    proposals: list[dict],
    library: list[ContentItem],
) -> tuple[list[SoundEffectEvent], list[Diagnostic]]:
    """Sound effect events {ref, at, volume?} against the sound-effect library."""
    index = _index(library)
    events = []
    diagnostics = []
    for i, p in enumerate(proposals):
        item = index.get(p["ref"])
        if item is None:
            diagnostics.append(_unknown("Sound effect", i, p["ref"]))
            continue
        events.append(SoundEffectEvent(
            ref=item.id,
            title=p.get("title") or item.description,
            url=item.url,
            at=float(p["at"]),
            duration=item.duration or 0.0,
            volume=p.get("volume", DEFAULT_SFX_VOLUME),
        ))
    return events, diagnostics


def build_image_overlays(
    proposals: list[dict],
    library: list[ContentItem],
) -> tuple[list[ImageOverlayEvent], list[Diagnostic]]:
    """Image/GIF overlay events {ref, at, duration?, x?, y?, scale?}."""
    index = _index(library)
    events = []
    diagnostics = []
    for i, p in enumerate(proposals):
        item = index.get(p["ref"])
        if item is None:
            diagnostics.append(_unknown("Overlay", i, p["ref"]))
            continue
        events.append(ImageOverlayEvent(
            ref=item.id,
            title=p.get("title") or item.description,
            url=item.url,
            at=float(p["at"]),
            duration=float(p.get("duration", DEFAULT_OVERLAY_DURATION)),
            x=p.get("x", 50),
            y=p.get("y", 50),
            scale=p.get("scale", 1.0),
            width=p.get("width"),
            height=p.get("height"),
        ))
    return events, diagnostics


def text_effect_duration(word_count: int) -> float:
    """Display time for an on-screen text effect with *word_count* words."""
    return max(MIN_TEXT_EFFECT_DURATION, word_count * SECONDS_PER_WORD) + TEXT_EFFECT_ANIMATION_PAD


def build_text_effects(proposals: list[dict]) -> tuple[list[TextEffectEvent], list[Diagnostic]]:
    """Text effect events timed by how long their text takes to read."""
    events = []
    diagnostics = []
    for i, p in enumerate(proposals):
        effect = p.get("effect")
        if effect not in TEXT_EFFECTS:
            diagnostics.append(Diagnostic(
                stage=_STAGE,
                code="unknown_effect",
                message=f"Text effect {i}: unknown effect '{effect}'; skipped",
                ref=effect,
            ))
            continue
        words = count_words(
            p.get("header"), p.get("body"), p.get("top_text"), p.get("bottom_text"),
        )
        events.append(TextEffectEvent(
            effect=effect,
            at=float(p["at"]),
            duration=text_effect_duration(words),
            header=p.get("header"),
            body=p.get("body"),
            top_text=p.get("top_text"),
            bottom_text=p.get("bottom_text"),
            word_count=words,
        ))
    return events, diagnostics
