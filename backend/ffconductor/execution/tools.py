"""
Locating the ffmpeg and ffprobe executables.
"""

import logging
import os
import shutil
from typing import Dict, Optional, TYPE_CHECKING

from .errors import ToolNotFoundError

if TYPE_CHECKING:
    from ..settings.models import AppSettings

logger = logging.getLogger(__name__)


# Common install locations, checked after PATH
COMMON_TOOL_DIRS = [
    "/usr/local/bin",
    "/usr/bin",
    "/opt/homebrew/bin",
]


class ToolLocator:
    """
    Resolves FFmpeg executables.

    Order: explicitly configured path, then PATH, then common install
    locations. Results are cached per tool name.
    """

    def __init__(self, ffmpeg_path: str = "", ffprobe_path: str = ""):
        self._configured: Dict[str, str] = {
            "ffmpeg": ffmpeg_path or "",
            "ffprobe": ffprobe_path or "",
        }
        self._resolved: Dict[str, str] = {}

    @classmethod
    def from_settings(cls, settings: "AppSettings") -> "ToolLocator":
        return cls(ffmpeg_path=settings.ffmpeg_path, ffprobe_path=settings.ffprobe_path)

    def _find(self, tool: str) -> Optional[str]:
        if tool in self._resolved:
            return self._resolved[tool]

        configured = self._configured.get(tool)
        if configured:
            # Either a full path or a bare name resolvable on PATH
            found = configured if os.path.isfile(configured) else shutil.which(configured)
            if found:
                self._resolved[tool] = found
                return found
            logger.warning(f"[Tools] Configured {tool} path not found: {configured}")

        found = shutil.which(tool)
        if found:
            self._resolved[tool] = found
            return found

        for directory in COMMON_TOOL_DIRS:
            path = os.path.join(directory, tool)
            if os.path.isfile(path) and os.access(path, os.X_OK):
                self._resolved[tool] = path
                return path

        return None

    def find_ffmpeg(self) -> Optional[str]:
        """Find ffmpeg binary path."""
        return self._find("ffmpeg")

    def find_ffprobe(self) -> Optional[str]:
        """Find ffprobe binary path."""
        return self._find("ffprobe")

    def require_ffmpeg(self) -> str:
        """
        Raises:
            ToolNotFoundError: If ffmpeg cannot be located
        """
        path = self.find_ffmpeg()
        if path is None:
            raise ToolNotFoundError("ffmpeg")
        return path

    def require_ffprobe(self) -> str:
        """
        Raises:
            ToolNotFoundError: If ffprobe cannot be located
        """
        path = self.find_ffprobe()
        if path is None:
            raise ToolNotFoundError("ffprobe")
        return path

    def configure(self, ffmpeg_path: str = "", ffprobe_path: str = "") -> None:
        """Replace the configured paths and forget cached lookups."""
        self._configured = {
            "ffmpeg": ffmpeg_path or "",
            "ffprobe": ffprobe_path or "",
        }
        self._resolved.clear()
