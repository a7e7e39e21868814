"""
Tests for encoder detection, caching and recommendation.

subprocess.run is replaced by a scripted host: which encoders are compiled
in, and how each hardware functional test behaves.
"""

import subprocess
from datetime import datetime, timedelta
from unittest.mock import MagicMock, patch

import pytest

from ffconductor.encoders import (
    CACHE_TTL,
    ENCODER_CATALOGUE,
    EncoderDetector,
    EncoderType,
    FailurePhraseRules,
    candidates_for_codec,
    get_codecs_for_encoder,
)
from ffconductor.encoders.catalogue import REASON_NOT_COMPILED, REASON_NOT_FUNCTIONAL
from ffconductor.encoders.detector import DetectionCache, functional_test_args


ENCODERS_OUTPUT = """Encoders:
 V..... = Video
 A..... = Audio
 ------
 V....D libx264              libx264 H.264 / AVC / MPEG-4 AVC / MPEG-4 part 10 (codec h264)
 V....D libx265              libx265 H.265 / HEVC (codec hevc)
 V....D libvpx-vp9           libvpx VP9 (codec vp9)
 V....D h264_nvenc           NVIDIA NVENC H.264 encoder (codec h264)
 V....D hevc_nvenc           NVIDIA NVENC hevc encoder (codec hevc)
 V..... h264_qsv             H.264 / AVC / MPEG-4 AVC / MPEG-4 part 10 (Intel Quick Sync Video acceleration) (codec h264)
 A....D aac                  AAC (Advanced Audio Coding)
"""

FRAME_LINE = "frame=    1 fps=0.0 q=0.0 Lsize=N/A time=00:00:00.04 bitrate=N/A speed=0.5x\n"


def result(returncode: int = 0, stderr: str = "", stdout: str = "") -> MagicMock:
    completed = MagicMock()
    completed.returncode = returncode
    completed.stderr = stderr
    completed.stdout = stdout
    return completed


# Functional-test behaviour per hardware encoder
FUNCTIONAL = {
    # Driver missing, but FFmpeg still exits 0
    "h264_nvenc": result(0, FRAME_LINE + "[h264_nvenc @ 0x55d] Cannot load libnvidia-encode.so.1\n"),
    "hevc_nvenc": result(0, FRAME_LINE),
    "h264_qsv": subprocess.TimeoutExpired(cmd="ffmpeg", timeout=10),
}


class FakeLocator:
    def __init__(self, ffmpeg="/usr/bin/ffmpeg"):
        self.ffmpeg = ffmpeg

    def find_ffmpeg(self):
        return self.ffmpeg


class ScriptedHost:
    """Callable stand-in for subprocess.run."""

    def __init__(self, functional=None):
        self.functional = dict(FUNCTIONAL if functional is None else functional)
        self.calls = []

    def __call__(self, argv, **kwargs):
        self.calls.append(argv)
        if "-encoders" in argv:
            return result(stdout=ENCODERS_OUTPUT)
        encoder = argv[argv.index("-c:v") + 1]
        outcome = self.functional.get(encoder, result(1, "Unknown encoder"))
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def tested_encoders(self):
        return [argv[argv.index("-c:v") + 1] for argv in self.calls if "-c:v" in argv]


class Clock:
    def __init__(self):
        self.now = datetime(2024, 5, 1, 9, 0, 0)

    def __call__(self):
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now += delta


@pytest.fixture
def host():
    scripted = ScriptedHost()
    with patch("ffconductor.encoders.detector.subprocess.run", side_effect=scripted):
        yield scripted


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def detector(db, clock):
    return EncoderDetector(db, FakeLocator(), clock=clock)


def by_name(encoders):
    return {e.name: e for e in encoders}


# =============================================================================
# Detection
# =============================================================================

class TestDetect:

    def test_one_entry_per_catalogue_item_in_order(self, detector, host):
        encoders = detector.detect()

        assert [e.name for e in encoders] == list(ENCODER_CATALOGUE)

    def test_software_needs_only_compilation(self, detector, host):
        encoders = by_name(detector.detect())

        assert encoders["libx264"].is_available
        assert encoders["libx265"].is_available
        assert encoders["libvpx-vp9"].is_available
        assert "libx264" not in host.tested_encoders()

    def test_exit_zero_with_failure_phrase_is_unavailable(self, detector, host):
        nvenc = by_name(detector.detect())["h264_nvenc"]

        assert not nvenc.is_available
        assert nvenc.unavailable_reason == REASON_NOT_FUNCTIONAL
        assert nvenc.type == EncoderType.NVENC

    def test_working_hardware_encoder(self, detector, host):
        hevc = by_name(detector.detect())["hevc_nvenc"]

        assert hevc.is_available
        assert hevc.unavailable_reason is None
        assert hevc.supported_codecs == ["hevc", "h265"]

    def test_timeout_is_unavailable(self, detector, host):
        qsv = by_name(detector.detect())["h264_qsv"]

        assert not qsv.is_available
        assert qsv.unavailable_reason == REASON_NOT_FUNCTIONAL

    def test_not_compiled(self, detector, host):
        encoders = by_name(detector.detect())

        for name in ("h264_amf", "av1_nvenc", "hevc_videotoolbox", "libaom-av1"):
            assert not encoders[name].is_available
            assert encoders[name].unavailable_reason == REASON_NOT_COMPILED
        assert "h264_amf" not in host.tested_encoders()

    def test_only_compiled_hardware_is_tested(self, detector, host):
        detector.detect()

        assert sorted(host.tested_encoders()) == ["h264_nvenc", "h264_qsv", "hevc_nvenc"]

    def test_results_replace_stored_rows(self, db, detector, host):
        detector.detect()
        detector.detect(force_refresh=True)

        assert db.encoders.count() == len(ENCODER_CATALOGUE)

    def test_missing_ffmpeg_marks_everything_unavailable(self, db, clock):
        detector = EncoderDetector(db, FakeLocator(ffmpeg=None), clock=clock)

        with patch("ffconductor.encoders.detector.subprocess.run") as run:
            encoders = detector.detect()
            run.assert_not_called()

        assert not any(e.is_available for e in encoders)

    def test_frame_evidence_required(self, db, clock):
        scripted = ScriptedHost({"hevc_nvenc": result(0, "no progress here\n")})
        detector = EncoderDetector(db, FakeLocator(), clock=clock)

        with patch("ffconductor.encoders.detector.subprocess.run", side_effect=scripted):
            assert not by_name(detector.detect())["hevc_nvenc"].is_available

    def test_functional_test_command(self):
        assert functional_test_args("h264_nvenc") == [
            "-hide_banner", "-f", "lavfi", "-i", "nullsrc=s=256x256:d=0.1",
            "-c:v", "h264_nvenc", "-frames:v", "1", "-f", "null", "-",
        ]


# =============================================================================
# Cache
# =============================================================================

class TestCache:

    def test_fresh_cache_is_served(self, detector, host, clock):
        first = detector.detect()
        calls = len(host.calls)

        clock.advance(timedelta(minutes=29))
        second = detector.detect()

        assert len(host.calls) == calls
        assert [e.id for e in second] == [e.id for e in first]
        assert detector.last_detected_at == datetime(2024, 5, 1, 9, 0, 0)

    def test_stale_cache_is_refreshed(self, detector, host, clock):
        detector.detect()
        calls = len(host.calls)

        clock.advance(CACHE_TTL)
        detector.detect()

        assert len(host.calls) > calls
        assert detector.last_detected_at == clock.now

    def test_force_refresh(self, detector, host):
        detector.detect()
        calls = len(host.calls)

        detector.detect(force_refresh=True)

        assert len(host.calls) > calls

    def test_rows_from_previous_process_are_stale(self, db, host, clock):
        EncoderDetector(db, FakeLocator(), clock=clock).detect()
        calls = len(host.calls)

        EncoderDetector(db, FakeLocator(), clock=clock).detect()

        assert len(host.calls) > calls

    def test_detection_cache(self):
        now = datetime(2024, 1, 1)
        assert DetectionCache().is_stale(now)
        assert not DetectionCache(detected_at=now).is_stale(now + timedelta(minutes=5))
        assert DetectionCache(detected_at=now).is_stale(now + timedelta(minutes=30))


# =============================================================================
# Recommendation
# =============================================================================

class TestRecommend:

    def test_prefers_available_hardware(self, detector, host):
        assert detector.recommend("hevc") == "hevc_nvenc"
        assert detector.recommend("H265") == "hevc_nvenc"

    def test_falls_back_to_software_when_hardware_broken(self, detector, host):
        assert detector.recommend("h264") == "libx264"
        assert detector.recommend("avc") == "libx264"

    def test_without_hardware_preference_takes_first_available(self, detector, host):
        assert detector.recommend("hevc", prefer_hardware=False) == "hevc_nvenc"
        assert detector.recommend("vp9", prefer_hardware=False) == "libvpx-vp9"

    def test_nothing_available_falls_back_to_default(self, detector, host):
        assert detector.recommend("av1") == "libx264"
        assert detector.recommend("prores") == "libx264"

    def test_preference_from_settings(self, db, settings_service, clock, host):
        settings_service.save_settings(
            settings_service.get_settings().model_copy(update={"prefer_hardware_acceleration": False})
        )
        detector = EncoderDetector(db, FakeLocator(), settings_service=settings_service, clock=clock)

        assert detector.recommend("hevc") == "hevc_nvenc"

    def test_is_encoder_available(self, detector, host):
        assert detector.is_encoder_available("hevc_nvenc")
        assert not detector.is_encoder_available("h264_nvenc")
        assert not detector.is_encoder_available("not_an_encoder")


# =============================================================================
# Heuristics
# =============================================================================

class TestFailurePhraseRules:

    def test_any_single_phrase_group(self):
        rules = FailurePhraseRules()

        assert rules.find_failure("Device creation failed: -12") == "Device creation failed"
        assert rules.find_failure("all good") is None

    def test_multi_phrase_group_needs_every_phrase(self):
        rules = FailurePhraseRules.from_lists([["hwaccel", "failed"]])

        assert rules.find_failure("hwaccel init failed") == "hwaccel + failed"
        assert rules.find_failure("hwaccel ok") is None

    def test_allow_list_drops_matching_lines(self):
        rules = FailurePhraseRules.from_lists([["not available"]], allow=["optional feature"])

        assert rules.find_failure("optional feature not available\nframe=1") is None
        assert rules.find_failure("encoder not available") == "not available"

    def test_settings_rules_are_used(self, db, settings_service, clock):
        settings_service.save_settings(
            settings_service.get_settings().model_copy(update={"hardware_ignored_phrases": ["Cannot load"]})
        )
        detector = EncoderDetector(db, FakeLocator(), settings_service=settings_service, clock=clock)

        with patch("ffconductor.encoders.detector.subprocess.run", side_effect=ScriptedHost()):
            assert by_name(detector.detect())["h264_nvenc"].is_available

    def test_test_encoder_with_explicit_rules(self, db):
        detector = EncoderDetector(db, FakeLocator(), rules=FailurePhraseRules(deny=()))

        with patch("ffconductor.encoders.detector.subprocess.run", side_effect=ScriptedHost()):
            assert detector.test_encoder("/usr/bin/ffmpeg", "h264_nvenc")


class TestCatalogue:

    @pytest.mark.parametrize("codec, first, last", [
        ("h264", "h264_nvenc", "libx264"),
        ("HEVC", "hevc_nvenc", "libx265"),
        ("x265", "hevc_nvenc", "libx265"),
        ("av1", "av1_nvenc", "libaom-av1"),
    ])
    def test_candidates_hardware_first(self, codec, first, last):
        candidates = candidates_for_codec(codec)
        assert candidates[0] == first
        assert candidates[-1] == last

    def test_unknown_codec(self):
        assert candidates_for_codec("mjpeg") == ["libx264"]

    def test_codecs_for_encoder(self):
        assert get_codecs_for_encoder("h264_qsv") == ["h264", "avc"]
        assert get_codecs_for_encoder("libvpx-vp9") == ["vp9"]
        assert get_codecs_for_encoder("prores_ks") == []
