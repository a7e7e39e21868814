"""
Encoder capability detection.

Two checks per catalogue entry:
1. Compiled in: listed by `ffmpeg -encoders`
2. Functional (hardware only): encodes one frame of a synthetic source

Results replace the stored encoder rows and are served from there until the
cache goes stale.
"""

import logging
import re
import subprocess
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Set, TYPE_CHECKING

from .catalogue import (
    DEFAULT_SOFTWARE_ENCODER,
    ENCODER_CATALOGUE,
    REASON_NOT_COMPILED,
    REASON_NOT_FUNCTIONAL,
    FailurePhraseRules,
    candidates_for_codec,
    get_codecs_for_encoder,
)
from .models import EncoderType, HardwareEncoder
from ..execution.tools import ToolLocator

if TYPE_CHECKING:
    from ..persistence.database import AppDatabase
    from ..settings.service import SettingsService

logger = logging.getLogger(__name__)


CACHE_TTL = timedelta(minutes=30)

# Seconds allowed for one functional test
FUNCTIONAL_TEST_TIMEOUT = 10

# " V....D h264_nvenc           NVIDIA NVENC H.264 encoder (codec h264)"
ENCODER_LINE_PATTERN = re.compile(r'^\s*V[\.\w]{5}\s+(\S+)', re.MULTILINE)


@dataclass
class DetectionCache:
    """When detection last ran and how long its results stay fresh."""

    detected_at: Optional[datetime] = None
    ttl: timedelta = CACHE_TTL

    def is_stale(self, now: datetime) -> bool:
        if self.detected_at is None:
            return True
        return now - self.detected_at >= self.ttl


def functional_test_args(encoder_name: str) -> List[str]:
    """Arguments that encode a single 256x256 frame to the null muxer."""
    return [
        "-hide_banner",
        "-f", "lavfi",
        "-i", "nullsrc=s=256x256:d=0.1",
        "-c:v", encoder_name,
        "-frames:v", "1",
        "-f", "null",
        "-",
    ]


class EncoderDetector:
    """
    Probes and caches which encoders work on this host.

    The cache is not locked; concurrent callers may both run a detection,
    and the later one wins.
    """

    def __init__(
        self,
        db: "AppDatabase",
        locator: ToolLocator,
        settings_service: Optional["SettingsService"] = None,
        rules: Optional[FailurePhraseRules] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self._db = db
        self._locator = locator
        self._settings_service = settings_service
        self._rules = rules
        self._clock = clock
        self.cache = DetectionCache()

    @property
    def last_detected_at(self) -> Optional[datetime]:
        return self.cache.detected_at

    def _failure_rules(self) -> FailurePhraseRules:
        if self._rules is not None:
            return self._rules
        if self._settings_service is not None:
            settings = self._settings_service.get_settings()
            return FailurePhraseRules.from_lists(
                settings.hardware_failure_phrases,
                settings.hardware_ignored_phrases,
            )
        return FailurePhraseRules()

    def detect(self, force_refresh: bool = False) -> List[HardwareEncoder]:
        """
        Return encoder availability, probing FFmpeg when needed.

        Args:
            force_refresh: Ignore the cache and probe again

        Returns:
            One HardwareEncoder per catalogue entry, in catalogue order
        """
        if not force_refresh:
            stored = self._db.encoders.find_all()
            if stored and not self.cache.is_stale(self._clock()):
                return stored

        ffmpeg = self._locator.find_ffmpeg()
        if ffmpeg is None:
            logger.warning("[Encoders] FFmpeg not found, every encoder is unavailable")
            compiled: Set[str] = set()
        else:
            compiled = self.list_compiled_encoders(ffmpeg)

        rules = self._failure_rules()
        checked_at = self._clock()
        encoders: List[HardwareEncoder] = []

        for name, (display_name, encoder_type) in ENCODER_CATALOGUE.items():
            encoders.append(
                self._probe_encoder(ffmpeg, name, display_name, encoder_type, compiled, rules, checked_at)
            )

        self._db.encoders.replace_all(encoders)
        self.cache = DetectionCache(detected_at=checked_at, ttl=self.cache.ttl)

        available = [e.name for e in encoders if e.is_available]
        logger.info(f"[Encoders] Detection complete: {len(available)} available ({', '.join(available) or 'none'})")
        return encoders

    def _probe_encoder(
        self,
        ffmpeg: Optional[str],
        name: str,
        display_name: str,
        encoder_type: EncoderType,
        compiled: Set[str],
        rules: FailurePhraseRules,
        checked_at: datetime,
    ) -> HardwareEncoder:
        is_compiled = name in compiled
        try:
            is_available = is_compiled and (
                encoder_type == EncoderType.SOFTWARE
                or self.test_encoder(ffmpeg, name, rules)
            )
        except Exception as e:
            logger.warning(f"[Encoders] Probing {name} failed: {e}")
            is_available = False

        if not is_compiled:
            reason = REASON_NOT_COMPILED
        elif not is_available:
            reason = REASON_NOT_FUNCTIONAL
        else:
            reason = None

        return HardwareEncoder(
            name=name,
            display_name=display_name,
            type=encoder_type,
            is_available=is_available,
            supported_codecs=get_codecs_for_encoder(name),
            last_checked_at=checked_at,
            unavailable_reason=reason,
        )

    def list_compiled_encoders(self, ffmpeg: str) -> Set[str]:
        """Video encoder names from `ffmpeg -encoders`; empty on failure."""
        try:
            result = subprocess.run(
                [ffmpeg, "-encoders", "-hide_banner"],
                stdin=subprocess.DEVNULL,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                timeout=FUNCTIONAL_TEST_TIMEOUT,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.warning(f"[Encoders] Listing encoders failed: {e}")
            return set()
        return set(ENCODER_LINE_PATTERN.findall(result.stdout))

    def test_encoder(
        self,
        ffmpeg: str,
        encoder_name: str,
        rules: Optional[FailurePhraseRules] = None,
    ) -> bool:
        """
        Functional test: encode one synthetic frame.

        A pass needs exit code 0, a `frame=` line in stderr, and no failure
        phrase. Some drivers report failure only in stderr and still exit 0.
        """
        rules = rules or self._failure_rules()
        try:
            result = subprocess.run(
                [ffmpeg] + functional_test_args(encoder_name),
                stdin=subprocess.DEVNULL,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                timeout=FUNCTIONAL_TEST_TIMEOUT,
            )
        except subprocess.TimeoutExpired:
            # subprocess.run kills the child before re-raising
            logger.warning(f"[Encoders] Functional test for {encoder_name} timed out")
            return False
        except OSError as e:
            logger.warning(f"[Encoders] Functional test for {encoder_name} could not start: {e}")
            return False

        stderr = result.stderr or ""
        if result.returncode != 0:
            logger.debug(f"[Encoders] {encoder_name} test exited with code {result.returncode}")
            return False
        if "frame=" not in stderr:
            logger.debug(f"[Encoders] {encoder_name} test produced no frames")
            return False

        failure = rules.find_failure(stderr)
        if failure is not None:
            logger.info(f"[Encoders] {encoder_name} reported '{failure}' despite exit code 0")
            return False
        return True

    def is_encoder_available(self, encoder_name: str) -> bool:
        return any(e.name == encoder_name and e.is_available for e in self.detect())

    def recommend(self, codec: str, prefer_hardware: Optional[bool] = None) -> str:
        """
        Pick an encoder for a logical codec.

        Args:
            codec: Codec name or alias (h264/avc, h265/hevc, av1, vp9)
            prefer_hardware: Defaults to the persisted setting

        Returns:
            An available encoder name, libx264 as the last resort
        """
        if prefer_hardware is None:
            if self._settings_service is not None:
                prefer_hardware = self._settings_service.get_settings().prefer_hardware_acceleration
            else:
                prefer_hardware = True

        available = {e.name: e for e in self.detect() if e.is_available}
        candidates = candidates_for_codec(codec)

        if prefer_hardware:
            for name in candidates:
                encoder = available.get(name)
                if encoder is not None and encoder.is_hardware:
                    return name

        for name in candidates:
            if name in available:
                return name

        return DEFAULT_SOFTWARE_ENCODER
