"""
Shared fixtures.

Puts backend/ on sys.path so the suite runs from a source checkout without
installing the package.
"""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from ffconductor.persistence.database import AppDatabase
from ffconductor.settings.service import SettingsService
from ffconductor.templates.service import TemplateService


FIXTURES_DIR = Path(__file__).parent / "fixtures"


@pytest.fixture
def db():
    database = AppDatabase.in_memory()
    yield database
    database.close()


@pytest.fixture
def settings_service(db):
    return SettingsService(db)


@pytest.fixture
def template_service(db):
    service = TemplateService(db)
    service.initialize_system_templates()
    return service


@pytest.fixture
def fake_ffmpeg_script() -> str:
    """Path of a Python script that imitates FFmpeg's stderr output."""
    return str(FIXTURES_DIR / "fake_ffmpeg.py")
