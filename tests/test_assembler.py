"""Tests for timeline assembly in standard and cutaway modes.

Requests are built as manifest dicts and normalized with normalize_request,
so these exercise the same path the CLI takes after loading YAML.
"""

import json

import pytest

from reelcompose.assembler import (
    build_pool,
    compose_request,
    resolve_bookends,
    segment_at,
    segment_start_times,
    validate_timeline,
)
from reelcompose.errors import (
    EmptyCandidatePoolError,
    InvalidTargetError,
    NoValidContentError,
)
from reelcompose.models import ContentItem, SegmentRole, SourceKind
from reelcompose.request_manifest import normalize_request


def _candidates(n=4, duration=10.0):
    return [{"id": f"clip-{i}", "duration": duration, "tags": ["city"]} for i in range(n)]


def _standard_request(**overrides):
    """Four 6s library segments, fades after the first two, target 20s."""
    m = {
        "id": "promo-001",
        "target_duration": 20.0,
        "candidates": _candidates(),
        "owned": [
            {"id": "intro", "duration": 3.0, "url": "/u/intro.mp4"},
            {"id": "outro", "duration": 4.0, "url": "/u/outro.mp4"},
        ],
        "segments": [
            {"ref": "clip-0", "duration": 6.0, "transition": "fade"},
            {"ref": "clip-1", "duration": 6.0, "transition": "fade"},
            {"ref": "clip-2", "duration": 6.0},
            {"ref": "clip-3", "duration": 6.0},
        ],
    }
    m.update(overrides)
    return m


def _cutaway_request(**overrides):
    m = {
        "mode": "cutaway",
        "candidates": _candidates(duration=10.0),
        "owned": [{"id": "talk", "duration": 30.0, "url": "/u/talk.mp4"}],
        "recordings": [{"ref": "talk"}],
        "insertions": [
            {"ref": "clip-0", "start": 5.0, "duration": 4.0},
            {"ref": "clip-1", "start": 6.0, "duration": 3.0},
            {"ref": "clip-2", "start": 20.0, "duration": 5.0},
        ],
    }
    m.update(overrides)
    return m


def _compose(raw, settings=None):
    config = normalize_request(raw)
    return compose_request(config, settings=settings)


class _Settings:
    def __init__(self, defaults=None, error=None):
        self.defaults = defaults
        self.error = error
        self.calls = []

    def get_user_defaults(self, user_id):
        self.calls.append(user_id)
        if self.error:
            raise self.error
        return self.defaults


class TestStandardMode:
    def test_hits_target(self):
        result = _compose(_standard_request())
        timeline = result.timeline
        assert timeline.id == "promo-001"
        assert len(timeline.segments) == 4
        assert timeline.durations.total == pytest.approx(20.0, abs=0.05)
        assert timeline.durations.transition_overlap == pytest.approx(1.0)
        assert validate_timeline(timeline) == []

    def test_segments_reference_library(self):
        timeline = _compose(_standard_request()).timeline
        seg = timeline.segments[0]
        assert seg.role == SegmentRole.PRIMARY
        assert seg.source.kind == SourceKind.LIBRARY
        assert seg.source.id == "clip-0"
        assert seg.transition.kind == "fade"
        assert seg.tags == ["city"]

    def test_missing_target_raises(self):
        raw = _standard_request()
        del raw["target_duration"]
        with pytest.raises(InvalidTargetError) as exc_info:
            _compose(raw)
        assert exc_info.value.category == "invalid_target"

    def test_non_positive_target_raises(self):
        with pytest.raises(InvalidTargetError):
            _compose(_standard_request(target_duration=0))

    @pytest.mark.parametrize("target", [float("inf"), float("nan")])
    def test_non_finite_target_raises(self, target):
        config = normalize_request(_standard_request())
        config["target_duration"] = target
        with pytest.raises(InvalidTargetError) as exc_info:
            compose_request(config)
        assert exc_info.value.category == "invalid_target"

    def test_positioned_overlay_composes(self):
        raw = _standard_request(
            libraries={"overlays": [{"id": "logo", "url": "/u/logo.png"}]},
            image_overlays=[{"ref": "logo", "at": 2.0, "duration": 3.0, "x": 80, "y": 10, "scale": 0.5}],
        )
        overlay = _compose(raw).timeline.tracks.image_overlays[0]
        assert (overlay.x, overlay.y, overlay.scale) == (80, 10, 0.5)

    def test_empty_pool_raises(self):
        raw = _standard_request(candidates=[], owned=[])
        with pytest.raises(EmptyCandidatePoolError):
            _compose(raw)

    def test_all_refs_invalid_raises(self):
        raw = _standard_request(segments=[{"ref": "ghost", "duration": 6.0}])
        with pytest.raises(NoValidContentError) as exc_info:
            _compose(raw)
        assert "[no_content]" in str(exc_info.value)

    def test_invalid_and_duplicate_refs_dropped(self):
        raw = _standard_request(segments=[
            {"ref": "clip-0", "duration": 6.0},
            {"ref": "ghost", "duration": 6.0},
            {"ref": "clip-0", "duration": 6.0},
            {"ref": "clip-1", "duration": 6.0},
        ])
        result = _compose(raw)
        assert [s.source.id for s in result.timeline.segments] == ["clip-0", "clip-1"]
        codes = [d.code for d in result.diagnostics]
        assert "unknown_ref" in codes
        assert "duplicate_ref" in codes
        assert result.timeline.durations.total == pytest.approx(20.0, abs=0.05)

    def test_owned_items_may_repeat(self):
        raw = _standard_request(segments=[
            {"ref": "intro", "duration": 3.0},
            {"ref": "clip-0", "duration": 6.0},
            {"ref": "intro", "duration": 3.0},
        ], target_duration=12.0)
        timeline = _compose(raw).timeline
        assert [s.source.id for s in timeline.segments] == ["intro", "clip-0", "intro"]

    def test_trim_past_source_flagged(self):
        raw = _standard_request(
            candidates=[{"id": "short", "duration": 4.0}],
            segments=[{"ref": "short", "duration": 4.0}],
            target_duration=10.0,
        )
        result = _compose(raw)
        assert "trim_exceeds_source" in [d.code for d in result.diagnostics]

    def test_lead_in_and_out(self):
        raw = _standard_request(
            lead_in={"ref": "intro"},
            lead_out={"ref": "outro"},
            sound_effects=[{"ref": "whoosh", "at": 5.0}],
            libraries={"sound_effects": [{"id": "whoosh", "duration": 1.0}]},
        )
        timeline = _compose(raw).timeline
        durations = timeline.durations
        assert timeline.segments[0].role == SegmentRole.LEAD_IN
        assert timeline.segments[-1].role == SegmentRole.LEAD_OUT
        assert durations.lead_in == 3.0
        assert durations.lead_out == 4.0
        assert durations.total == durations.lead_in + durations.core + durations.lead_out
        assert timeline.tracks.sound_effects[0].at == 8.0
        assert validate_timeline(timeline) == []

    def test_track_events_bounded_by_core(self):
        raw = _standard_request(
            sound_effects=[{"ref": "whoosh", "at": 25.0}, {"ref": "whoosh", "at": 1.0}],
            text_effects=[{"effect": "text-center-pop", "at": 19.0, "header": "Hello"}],
            libraries={"sound_effects": [{"id": "whoosh", "duration": 1.0}]},
        )
        result = _compose(raw)
        tracks = result.timeline.tracks
        assert [e.at for e in tracks.sound_effects] == [1.0]
        assert tracks.text_effects[0].end <= result.timeline.durations.total + 1e-9
        codes = [d.code for d in result.diagnostics]
        assert "event_out_of_range" in codes
        assert "event_clamped" in codes

    def test_music_and_narration(self):
        raw = _standard_request(
            lead_in={"ref": "intro"},
            narration={"ref": "vo-1", "url": "/tts/vo.mp3"},
            music={"ref": "song"},
            libraries={"music": [{"id": "song", "url": "/music/song.mp3"}]},
        )
        tracks = _compose(raw).timeline.tracks
        assert tracks.narration.start_offset == 3.0
        assert tracks.narration.volume == 1.0
        assert tracks.music.start_offset == 0.0
        assert tracks.music.volume == 0.3

    def test_captions_offset_by_lead_in(self):
        raw = _standard_request(
            lead_in={"ref": "intro"},
            captions={"enabled": True, "cues": [{"start": 0.5, "end": 2.0, "text": "Welcome"}]},
        )
        captions = _compose(raw).timeline.tracks.captions
        assert captions.enabled is True
        assert captions.start_offset == 3.0
        assert captions.cues[0].at == 3.5

    def test_captions_from_transcript(self, tmp_path):
        transcript = tmp_path / "vo.json"
        transcript.write_text(json.dumps({"words": [
            {"word": "one", "start": 0.0, "end": 0.3},
            {"word": "two", "start": 0.4, "end": 0.7},
            {"word": "three", "start": 0.8, "end": 1.0},
            {"word": "four", "start": 1.2, "end": 1.5},
        ]}))
        raw = _standard_request(captions={"enabled": True, "transcript": str(transcript)})
        cues = _compose(raw).timeline.tracks.captions.cues
        assert [c.text for c in cues] == ["one two three", "four"]

    def test_video_settings(self):
        raw = _standard_request(video={"aspect": "vertical"})
        video = _compose(raw).timeline.video
        assert (video.width, video.height, video.fps) == (1080, 1920, 30)


class TestBookendLookup:
    def test_user_defaults_used(self):
        settings = _Settings({"lead_in": "intro", "lead_out": "outro"})
        timeline = _compose(_standard_request(user="u42"), settings).timeline
        assert settings.calls == ["u42"]
        assert timeline.segments[0].source.id == "intro"
        assert timeline.segments[-1].source.id == "outro"

    def test_explicit_ref_wins(self):
        settings = _Settings({"lead_in": "outro"})
        raw = _standard_request(user="u42", lead_in={"ref": "intro"})
        timeline = _compose(raw, settings).timeline
        assert timeline.segments[0].source.id == "intro"

    def test_lookup_failure_degrades(self):
        settings = _Settings(error=ConnectionError("settings service down"))
        result = _compose(_standard_request(user="u42"), settings)
        assert result.timeline.durations.lead_in == 0.0
        assert result.diagnostics[-1].code == "settings_unavailable"

    def test_no_defaults_is_normal(self):
        result = _compose(_standard_request(user="u42"), _Settings(None))
        assert result.timeline.durations.lead_in == 0.0
        assert "settings_unavailable" not in [d.code for d in result.diagnostics]

    def test_unknown_bookend_ref_dropped(self):
        config = normalize_request(_standard_request(lead_out={"ref": "ghost"}))
        lead_in, lead_out, diagnostics = resolve_bookends(config, build_pool(config))
        assert lead_in is None and lead_out is None
        assert diagnostics[0].code == "unknown_ref"

    def test_bookend_without_duration_dropped(self):
        raw = _standard_request(owned=[{"id": "intro"}], lead_in={"ref": "intro"})
        config = normalize_request(raw)
        lead_in, _, diagnostics = resolve_bookends(config, build_pool(config))
        assert lead_in is None
        assert diagnostics[0].code == "bookend_unavailable"


class TestCutawayMode:
    def test_thirty_second_scenario(self):
        result = _compose(_cutaway_request())
        timeline = result.timeline
        assert [s.role for s in timeline.segments] == [
            SegmentRole.PRIMARY, SegmentRole.CUTAWAY, SegmentRole.PRIMARY,
            SegmentRole.CUTAWAY, SegmentRole.PRIMARY,
        ]
        windows = sum(s.source_audio_window.duration for s in timeline.segments)
        assert windows == 30.0
        assert timeline.durations.total == 30.0
        assert validate_timeline(timeline) == []

    def test_source_audio_track(self):
        raw = _cutaway_request(lead_in={"ref": "intro"}, owned=[
            {"id": "talk", "duration": 30.0, "url": "/u/talk.mp4"},
            {"id": "intro", "duration": 2.0, "url": "/u/intro.mp4"},
        ])
        timeline = _compose(raw).timeline
        bed = timeline.tracks.source_audio[0]
        assert (bed.ref, bed.start_offset, bed.volume) == ("talk", 2.0, 1.0)
        assert timeline.durations.total == 32.0

    def test_multiple_recordings(self):
        raw = _cutaway_request(
            owned=[
                {"id": "part-1", "duration": 12.0},
                {"id": "part-2", "duration": 18.0},
            ],
            recordings=[
                {"ref": "part-1", "captions": [{"start": 0.0, "end": 1.0, "text": "first"}]},
                {"ref": "part-2", "captions": [{"start": 0.0, "end": 1.0, "text": "second"}]},
            ],
        )
        timeline = _compose(raw).timeline
        assert timeline.durations.core == 30.0
        assert [b.start_offset for b in timeline.tracks.source_audio] == [0.0, 12.0]
        assert [c.at for c in timeline.tracks.captions.cues] == [0.0, 12.0]
        assert validate_timeline(timeline) == []

    def test_no_recordings_raises(self):
        with pytest.raises(InvalidTargetError, match="at least one source recording"):
            _compose(_cutaway_request(recordings=[]))

    def test_library_recording_raises(self):
        with pytest.raises(InvalidTargetError, match="not a caller-owned item"):
            _compose(_cutaway_request(recordings=[{"ref": "clip-0"}]))

    def test_recording_without_duration_raises(self):
        raw = _cutaway_request(owned=[{"id": "talk"}])
        with pytest.raises(InvalidTargetError, match="no known duration"):
            _compose(raw)

    def test_no_valid_insertions_keeps_speaker(self):
        raw = _cutaway_request(insertions=[{"ref": "ghost", "start": 5.0, "duration": 4.0}])
        result = _compose(raw)
        assert len(result.timeline.segments) == 1
        assert result.diagnostics[0].code == "unknown_ref"

    def test_duplicate_insertion_dropped_before_interleaving(self):
        raw = _cutaway_request(insertions=[
            {"ref": "clip-0", "start": 5.0, "duration": 4.0},
            {"ref": "clip-0", "start": 15.0, "duration": 4.0},
        ])
        timeline = _compose(raw).timeline
        cutaways = [s for s in timeline.segments if s.role == SegmentRole.CUTAWAY]
        assert len(cutaways) == 1
        assert validate_timeline(timeline) == []

    def test_target_not_applied(self):
        result = _compose(_cutaway_request(target_duration=20.0))
        assert result.timeline.durations.total == 30.0
        assert result.diagnostics[0].code == "target_ignored"


class TestDeterminism:
    def test_same_input_same_output(self):
        raw = _standard_request(id=None, lead_in={"ref": "intro"})
        first = _compose(raw)
        second = _compose(raw)
        assert first.model_dump_json() == second.model_dump_json()

    def test_derived_id_changes_with_content(self):
        a = _compose(_standard_request(id=None)).timeline.id
        b = _compose(_standard_request(id=None, target_duration=18.0)).timeline.id
        assert a != b


class TestBuildPool:
    def test_request_items_override_retrieved(self):
        config = normalize_request(_standard_request())
        retrieved = [
            ContentItem(id="clip-0", duration=99.0),
            ContentItem(id="extra", duration=5.0),
        ]
        pool = build_pool(config, retrieved)
        assert pool.get("clip-0").duration == 10.0
        assert "extra" in pool


class TestInspection:
    def test_segment_start_times(self):
        timeline = _compose(_standard_request()).timeline
        starts = segment_start_times(timeline)
        durations = [s.visible_duration for s in timeline.segments]
        assert starts[0] == 0.0
        # The first two segments hand off with 0.5s fades.
        assert starts[1] == pytest.approx(durations[0] - 0.5)
        assert starts[2] == pytest.approx(durations[0] + durations[1] - 1.0)

    def test_segment_at(self):
        timeline = _compose(_cutaway_request()).timeline
        assert segment_at(timeline, 0.0).id == "primary-0"
        assert segment_at(timeline, 6.0).role == SegmentRole.CUTAWAY
        assert segment_at(timeline, 29.9).id == "primary-4"
        assert segment_at(timeline, 30.0) is None
        assert segment_at(timeline, -1.0) is None

    def test_validate_flags_duplicate_library_use(self):
        timeline = _compose(_standard_request()).timeline
        segments = list(timeline.segments)
        segments[1] = segments[1].model_copy(update={"source": segments[0].source})
        broken = timeline.model_copy(update={"segments": segments})
        problems = validate_timeline(broken)
        assert any("used more than once" in p for p in problems)

    def test_validate_flags_total_mismatch(self):
        timeline = _compose(_standard_request()).timeline
        durations = timeline.durations.model_copy(update={"total": 30.0})
        problems = validate_timeline(timeline.model_copy(update={"durations": durations}))
        assert any("Effective duration" in p for p in problems)
