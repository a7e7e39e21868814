"""
Request and response bodies shared by the routers.
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..jobs.models import BatchTask, ConversionTask
from ..settings.models import FileExistsAction


class OperationResponse(BaseModel):
    """Generic response for control operations."""

    model_config = ConfigDict(extra="forbid")

    success: bool
    message: str


class TemplateRequest(BaseModel):
    """Body for creating or replacing a user template."""

    model_config = ConfigDict(extra="forbid")

    name: str
    description: str = ""
    command_args: str
    category: str = ""
    supported_input_formats: List[str] = Field(default_factory=list)
    output_extension: str = "mp4"
    requires_hardware_acceleration: bool = False
    required_encoder: Optional[str] = None
    sort_order: int = 0


class CopyTemplateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = None


class CreateTaskRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    input_path: str
    output_path: str
    template_id: str
    parameters: Dict[str, str] = Field(default_factory=dict)
    file_exists_action: Optional[FileExistsAction] = None


class CreateBatchRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    input_paths: List[str]
    output_directory: str
    template_id: str
    name: Optional[str] = None
    parameters: Dict[str, str] = Field(default_factory=dict)
    name_pattern: Optional[str] = None


class ScanBatchRequest(BaseModel):
    """Batch every accepted media file found in a folder."""

    model_config = ConfigDict(extra="forbid")

    input_directory: str
    output_directory: str
    template_id: str
    recursive: bool = False
    extensions: Optional[List[str]] = None
    name: Optional[str] = None
    parameters: Dict[str, str] = Field(default_factory=dict)
    name_pattern: Optional[str] = None


class BatchDetail(BaseModel):
    """A batch with its child tasks."""

    model_config = ConfigDict(extra="forbid")

    batch: BatchTask
    tasks: List[ConversionTask]


class ValidatePathRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    path: str


class ValidatePathResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    path: str
    valid: bool


class DiskSpaceResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    path: str
    free_bytes: int
    free: str
