"""Timeline data model.

Every record the composition core emits is a frozen pydantic model, so a
finished Timeline can be handed to persistence (``model_dump(mode="json")``)
and rendering without either re-validating it. Stages never mutate a model;
they derive new ones with ``model_copy(update=...)``.

Segment roles form a closed set:
  - lead-in / lead-out: optional intro/outro footage around the core.
  - primary: core footage (standard scenes, or the speaker in cutaway mode).
  - cutaway: library footage shown over continuous source audio.

All times are seconds on the timeline unless a field says otherwise.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


# ── Content ───────────────────────────────────────────────────────


class SourceKind(str, Enum):
    LIBRARY = "library"
    OWNED = "owned"


class ContentItem(_Frozen):
    """One item of the request-scoped candidate pool."""

    id: str
    duration: float | None = Field(default=None, ge=0)
    url: str | None = None
    tags: list[str] = Field(default_factory=list)
    description: str = ""
    owned: bool = False

    @property
    def kind(self) -> SourceKind:
        return SourceKind.OWNED if self.owned else SourceKind.LIBRARY


class ContentRef(_Frozen):
    """Reference from a segment to the content it shows."""

    kind: SourceKind
    id: str
    url: str | None = None

    @classmethod
    def from_item(cls, item: ContentItem) -> "ContentRef":
        return cls(kind=item.kind, id=item.id, url=item.url)


# ── Segments ──────────────────────────────────────────────────────


class SegmentRole(str, Enum):
    LEAD_IN = "lead-in"
    LEAD_OUT = "lead-out"
    PRIMARY = "primary"
    CUTAWAY = "cutaway"


class Transition(_Frozen):
    """Outgoing transition from a segment into the next one."""

    kind: str
    duration: float = Field(default=0.5, ge=0, le=2)


class AudioWindow(_Frozen):
    """Slice of the original continuous audio that plays under a segment."""

    start: float = Field(ge=0)
    end: float

    @computed_field
    @property
    def duration(self) -> float:
        return self.end - self.start

    @model_validator(mode="after")
    def _check_order(self):
        if self.end <= self.start:
            raise ValueError(
                f"audio window end ({self.end}) must be > start ({self.start})"
            )
        return self


class Segment(_Frozen):
    """One visual unit: a trim window [in_sec, out_sec) into its source."""

    id: str
    role: SegmentRole
    source: ContentRef
    in_sec: float = Field(default=0.0, ge=0)
    out_sec: float
    transition: Transition | None = None
    source_audio_window: AudioWindow | None = None
    intent: str | None = None
    tags: list[str] = Field(default_factory=list)

    @computed_field
    @property
    def visible_duration(self) -> float:
        return self.out_sec - self.in_sec

    @model_validator(mode="after")
    def _check_trim(self):
        if self.out_sec <= self.in_sec:
            raise ValueError(
                f"Segment {self.id}: out ({self.out_sec}) must be > in ({self.in_sec})"
            )
        return self

    def with_duration(self, duration: float) -> "Segment":
        """Return a copy whose trim window keeps in_sec and spans *duration*."""
        return self.model_copy(update={"out_sec": self.in_sec + duration})


# ── Secondary tracks ──────────────────────────────────────────────


class TrackEvent(_Frozen):
    """Anything placed at a time offset on the timeline."""

    at: float = Field(ge=0)
    duration: float = Field(default=0.0, ge=0)

    @computed_field
    @property
    def end(self) -> float:
        return self.at + self.duration


class SoundEffectEvent(TrackEvent):
    ref: str
    title: str = ""
    url: str | None = None
    volume: float = Field(default=0.5, ge=0, le=1)


class ImageOverlayEvent(TrackEvent):
    ref: str
    title: str = ""
    url: str | None = None
    x: float = Field(default=50, ge=0, le=100)
    y: float = Field(default=50, ge=0, le=100)
    scale: float = Field(default=1.0, gt=0)
    width: int | None = None
    height: int | None = None


class TextEffectEvent(TrackEvent):
    effect: str
    header: str | None = None
    body: str | None = None
    top_text: str | None = None
    bottom_text: str | None = None
    word_count: int = 0


class CaptionCue(TrackEvent):
    text: str


class AudioBed(_Frozen):
    """A continuous audio layer: narration, music, or a source recording."""

    ref: str
    url: str | None = None
    volume: float = Field(default=1.0, ge=0, le=1)
    start_offset: float = Field(default=0.0, ge=0)
    duration: float | None = Field(default=None, ge=0)


class CaptionTrack(_Frozen):
    enabled: bool = False
    burn_in: bool = False
    words_per_block: int = Field(default=3, ge=1)
    font: str = "Inter"
    start_offset: float = Field(default=0.0, ge=0)
    cues: list[CaptionCue] = Field(default_factory=list)


class Tracks(_Frozen):
    narration: AudioBed | None = None
    music: AudioBed | None = None
    source_audio: list[AudioBed] = Field(default_factory=list)
    sound_effects: list[SoundEffectEvent] = Field(default_factory=list)
    image_overlays: list[ImageOverlayEvent] = Field(default_factory=list)
    text_effects: list[TextEffectEvent] = Field(default_factory=list)
    captions: CaptionTrack = Field(default_factory=CaptionTrack)


# ── Timeline ──────────────────────────────────────────────────────


class DurationSummary(_Frozen):
    target: float
    core: float
    lead_in: float = 0.0
    lead_out: float = 0.0
    transition_overlap: float = 0.0
    total: float


class VideoSettings(_Frozen):
    width: int = 1920
    height: int = 1080
    fps: int = 30
    aspect: str | None = "landscape"


class Timeline(_Frozen):
    version: int = 1
    id: str
    mode: str
    video: VideoSettings = Field(default_factory=VideoSettings)
    segments: list[Segment]
    tracks: Tracks = Field(default_factory=Tracks)
    durations: DurationSummary


# ── Diagnostics ───────────────────────────────────────────────────


class Diagnostic(_Frozen):
    """A recovered problem, reported alongside the pure result."""

    stage: str
    code: str
    message: str
    ref: str | None = None


class CompositionResult(_Frozen):
    timeline: Timeline
    diagnostics: list[Diagnostic] = Field(default_factory=list)
