"""
Execution-specific errors.

Process failures are reported through ExecutionOutcome, not raised; these
cover the cases where nothing could be launched at all.
"""


class ExecutionError(Exception):
    """Base exception for execution failures."""

    pass


class ToolNotFoundError(ExecutionError):
    """
    An FFmpeg executable could not be located.

    Raised when neither the configured path, PATH nor the common install
    locations yield the tool.
    """

    def __init__(self, tool: str):
        self.tool = tool
        super().__init__(f"{tool} executable not found")
