"""
Persisted application settings.

Stored as the single document of the `settings` collection. Every field has a
default so a fresh database yields a usable configuration.
"""

import uuid
from enum import Enum
from pathlib import Path
from typing import List

from pydantic import BaseModel, ConfigDict, Field

from ..encoders.catalogue import DEFAULT_FAILURE_PHRASES


class OutputNamingRule(str, Enum):
    """How batch output file names are derived from input names."""

    ORIGINAL = "original"  # Keep the input stem
    SUFFIX = "suffix"  # Append `output_suffix` to the stem
    PATTERN = "pattern"  # Expand `output_name_pattern`


class FileExistsAction(str, Enum):
    """What to do when a generated output path already exists."""

    ASK = "ask"  # Refuse and let the caller decide
    OVERWRITE = "overwrite"  # Pass -y to FFmpeg
    SKIP = "skip"  # Leave the file out
    RENAME = "rename"  # Pick "name (n).ext"


def _default_output_directory() -> str:
    videos = Path.home() / "Videos"
    return str(videos if videos.is_dir() else Path.home())


class AppSettings(BaseModel):
    """Operator-editable settings."""

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))

    # Executables; empty means PATH lookup
    ffmpeg_path: str = ""
    ffprobe_path: str = ""

    # Output
    default_output_directory: str = Field(default_factory=_default_output_directory)
    output_naming: OutputNamingRule = OutputNamingRule.SUFFIX
    output_suffix: str = "_converted"
    # Used with OutputNamingRule.PATTERN, see files.format_file_name
    output_name_pattern: str = "{filename}_{datetime}"
    file_exists_action: FileExistsAction = FileExistsAction.ASK

    # Encoder selection
    prefer_hardware_acceleration: bool = True

    # Hardware functional-test heuristics. A group matches when every phrase
    # in it occurs in the test's stderr; lines containing an ignored phrase
    # are dropped before matching.
    hardware_failure_phrases: List[List[str]] = Field(
        default_factory=lambda: [list(group) for group in DEFAULT_FAILURE_PHRASES]
    )
    hardware_ignored_phrases: List[str] = Field(default_factory=list)

    # History retention in days; 0 disables the sweep
    task_history_retention_days: int = Field(default=30, ge=0)

    # UI theme: light / dark / system
    theme: str = "system"
