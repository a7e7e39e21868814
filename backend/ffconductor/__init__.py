"""
ffconductor: FFmpeg conversion orchestration.

Command templates, process execution with live progress, task and batch
state tracking, and hardware encoder detection.
"""

__version__ = "0.1.0"
