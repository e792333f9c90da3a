"""Media duration probing for caller-owned items declared without one.

Composition needs a known duration for recordings and bookends. Uploads
often arrive without one, so the request layer measures local files
before composing. Remote URLs are left alone.
"""

from pathlib import Path

from moviepy import AudioFileClip, VideoFileClip

from .models import ContentItem, Diagnostic


AUDIO_SUFFIXES = {".aac", ".flac", ".m4a", ".mp3", ".ogg", ".wav"}

_STAGE = "probe"


def probe_duration(path: str | Path) -> float:
    """Return the duration of a local video or audio file in seconds.

    Raises:
        FileNotFoundError: Missing file.
        OSError: ffmpeg could not read the file.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Media file not found: {path}")

    clip_cls = AudioFileClip if path.suffix.lower() in AUDIO_SUFFIXES else VideoFileClip
    clip = clip_cls(str(path))
    try:
        return float(clip.duration)
    finally:
        clip.close()


def fill_missing_durations(items: list[ContentItem]) -> tuple[list[ContentItem], list[Diagnostic]]:
    """Probe local files for items without a duration.

    Items that already have a duration, have no url, or point at a remote
    url pass through unchanged. A file that cannot be read is reported and
    left without a duration.
    """
    filled = []
    diagnostics = []
    for item in items:
        if item.duration is not None or not item.url or "://" in item.url:
            filled.append(item)
            continue
        try:
            duration = probe_duration(item.url)
        except OSError as e:
            diagnostics.append(Diagnostic(
                stage=_STAGE,
                code="probe_failed",
                message=f"Could not measure '{item.id}' ({e})",
                ref=item.id,
            ))
            filled.append(item)
            continue
        filled.append(item.model_copy(update={"duration": round(duration, 3)}))
    return filled, diagnostics
