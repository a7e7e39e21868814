"""
Command template models.

A template is a reusable FFmpeg argument string with placeholders
(``{input}``, ``{output}``, ``{encoder}``, ...). System templates ship with
the application and are protected from user mutation; user templates are
free-form.
"""

import os
import uuid
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class TemplateType(str, Enum):
    """Template origin."""

    SYSTEM = "system"  # Built-in preset, not deletable through user paths
    USER = "user"  # Created by the operator


class CommandTemplate(BaseModel):
    """
    A reusable FFmpeg command pattern.

    `command_args` is everything after the executable name. Path placeholders
    are expected to be quoted by the template author, e.g. ``-i "{input}"``.
    """

    model_config = ConfigDict(extra="forbid")

    # Identity
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str
    description: str = ""

    # Command
    command_args: str

    # Classification
    type: TemplateType = TemplateType.USER
    category: str = ""

    # Input formats without dot, e.g. ["mp4", "mkv"]; empty means any
    supported_input_formats: List[str] = Field(default_factory=list)
    output_extension: str = ""

    # Hardware requirements
    requires_hardware_acceleration: bool = False
    required_encoder: Optional[str] = None  # e.g. "h264_nvenc"

    # Display order, lower first
    sort_order: int = 0

    # Timestamps
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    @property
    def is_system(self) -> bool:
        return self.type == TemplateType.SYSTEM

    def accepts_input(self, path: str) -> bool:
        """True if the file extension is allowed by this template."""
        if not self.supported_input_formats:
            return True
        suffix = os.path.splitext(path)[1].lower().lstrip(".")
        return suffix in {fmt.lower().lstrip(".") for fmt in self.supported_input_formats}

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Name must be non-empty."""
        if not v or not v.strip():
            raise ValueError("Template name cannot be empty")
        return v.strip()

    @field_validator("output_extension")
    @classmethod
    def normalize_extension(cls, v: str) -> str:
        return v.strip().lstrip(".")
