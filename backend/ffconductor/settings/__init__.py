"""
Operator settings persisted in the application database.
"""

from .models import AppSettings, OutputNamingRule, FileExistsAction
from .service import SettingsService

__all__ = [
    "AppSettings",
    "OutputNamingRule",
    "FileExistsAction",
    "SettingsService",
]
