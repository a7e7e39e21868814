"""
Command templates: models, expansion and management.
"""

from .errors import (
    TemplateError,
    TemplateNotFoundError,
    TemplateProtectedError,
)
from .models import CommandTemplate, TemplateType
from .builder import build_command, FALLBACK_PARAMETERS
from .presets import get_system_templates
from .service import TemplateService

__all__ = [
    "TemplateError",
    "TemplateNotFoundError",
    "TemplateProtectedError",
    "CommandTemplate",
    "TemplateType",
    "build_command",
    "FALLBACK_PARAMETERS",
    "get_system_templates",
    "TemplateService",
]
