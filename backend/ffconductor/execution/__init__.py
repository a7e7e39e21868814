"""
FFmpeg process execution: launching, progress parsing, cancellation and
read-only probes.
"""

from .errors import ExecutionError, ToolNotFoundError
from .results import ExecutionOutcome, ExecutionStatus
from .progress import ConversionProgress, parse_progress, format_eta, format_size
from .cancellation import CancellationToken, CancellationRegistry
from .tools import ToolLocator
from .driver import ProcessDriver, build_argv
from .probe import (
    ToolProbe,
    FFmpegInfo,
    MediaInfo,
    MediaInfoParser,
    RegexMediaInfoParser,
)

__all__ = [
    "ExecutionError",
    "ToolNotFoundError",
    "ExecutionOutcome",
    "ExecutionStatus",
    "ConversionProgress",
    "parse_progress",
    "format_eta",
    "format_size",
    "CancellationToken",
    "CancellationRegistry",
    "ToolLocator",
    "ProcessDriver",
    "build_argv",
    "ToolProbe",
    "FFmpegInfo",
    "MediaInfo",
    "MediaInfoParser",
    "RegexMediaInfoParser",
]
