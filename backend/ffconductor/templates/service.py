"""
Template management.

User paths (create/update/delete/copy) never touch system templates; the
explicit `*_system_template` operations exist for administration and
seeding.
"""

import logging
from datetime import datetime
from typing import List, Optional, TYPE_CHECKING

from .models import CommandTemplate, TemplateType
from .errors import TemplateNotFoundError, TemplateProtectedError
from .presets import get_system_templates

if TYPE_CHECKING:
    from ..persistence.database import AppDatabase

logger = logging.getLogger(__name__)


class TemplateService:
    """CRUD over the `templates` collection."""

    def __init__(self, db: "AppDatabase"):
        self._db = db

    # Queries

    def get_all_templates(self, include_system: bool = True) -> List[CommandTemplate]:
        """All templates ordered by sort order; user templates only if asked."""
        where = None if include_system else (lambda t: t.type == TemplateType.USER)
        return self._db.templates.find(where=where, order_by=lambda t: t.sort_order)

    def get_templates_by_category(self, category: str) -> List[CommandTemplate]:
        return self._db.templates.find(
            where=lambda t: t.category == category,
            order_by=lambda t: t.sort_order,
        )

    def get_template(self, template_id: str) -> Optional[CommandTemplate]:
        return self._db.templates.find_by_id(template_id)

    def get_template_or_raise(self, template_id: str) -> CommandTemplate:
        """
        Raises:
            TemplateNotFoundError: If the template does not exist
        """
        template = self.get_template(template_id)
        if template is None:
            raise TemplateNotFoundError(template_id)
        return template

    def get_template_by_name(self, name: str) -> Optional[CommandTemplate]:
        return self._db.templates.find_one(lambda t: t.name == name)

    def get_categories(self) -> List[str]:
        """Distinct non-empty categories, alphabetical."""
        return sorted({t.category for t in self._db.templates.find_all() if t.category})

    # User mutations

    def create_template(self, template: CommandTemplate) -> CommandTemplate:
        """Insert as a USER template regardless of the incoming type."""
        now = datetime.now()
        template = template.model_copy(
            update={"type": TemplateType.USER, "created_at": now, "updated_at": now}
        )
        self._db.templates.insert(template)
        logger.info(f"[Templates] Created user template '{template.name}' ({template.id})")
        return template

    def update_template(self, template: CommandTemplate) -> CommandTemplate:
        """
        Replace a user template.

        Raises:
            TemplateNotFoundError: If the template does not exist
            TemplateProtectedError: If the stored template is a system template
        """
        existing = self.get_template_or_raise(template.id)
        if existing.is_system:
            raise TemplateProtectedError(template.id, "modified")

        template = template.model_copy(
            update={
                "type": TemplateType.USER,
                "created_at": existing.created_at,
                "updated_at": datetime.now(),
            }
        )
        self._db.templates.update(template)
        return template

    def delete_template(self, template_id: str) -> None:
        """
        Raises:
            TemplateNotFoundError: If the template does not exist
            TemplateProtectedError: If it is a system template
        """
        existing = self.get_template_or_raise(template_id)
        if existing.is_system:
            raise TemplateProtectedError(template_id, "deleted")
        self._db.templates.delete(template_id)
        logger.info(f"[Templates] Deleted user template '{existing.name}'")

    def copy_template(self, source_id: str, new_name: Optional[str] = None) -> CommandTemplate:
        """
        Duplicate any template (system included) as a new USER template.

        Raises:
            TemplateNotFoundError: If the source does not exist
        """
        source = self.get_template_or_raise(source_id)
        now = datetime.now()
        copy = CommandTemplate(
            name=new_name or f"{source.name} (copy)",
            description=source.description,
            command_args=source.command_args,
            type=TemplateType.USER,
            category=source.category,
            supported_input_formats=list(source.supported_input_formats),
            output_extension=source.output_extension,
            requires_hardware_acceleration=source.requires_hardware_acceleration,
            required_encoder=source.required_encoder,
            sort_order=source.sort_order + 1,
            created_at=now,
            updated_at=now,
        )
        self._db.templates.insert(copy)
        return copy

    # System templates

    def initialize_system_templates(self) -> int:
        """
        Seed the built-in presets once.

        Returns:
            Number of templates inserted (0 when already seeded)
        """
        if self._db.templates.count(lambda t: t.type == TemplateType.SYSTEM) > 0:
            return 0
        count = self._db.templates.insert_bulk(get_system_templates())
        logger.info(f"[Templates] Seeded {count} system templates")
        return count

    def reset_system_templates(self) -> int:
        """Drop every system template and seed the presets again."""
        removed = self._db.templates.delete_many(lambda t: t.type == TemplateType.SYSTEM)
        count = self._db.templates.insert_bulk(get_system_templates())
        logger.info(f"[Templates] Reset system templates ({removed} removed, {count} seeded)")
        return count

    def create_system_template(self, template: CommandTemplate) -> CommandTemplate:
        now = datetime.now()
        template = template.model_copy(
            update={"type": TemplateType.SYSTEM, "created_at": now, "updated_at": now}
        )
        self._db.templates.insert(template)
        return template

    def update_system_template(self, template: CommandTemplate) -> CommandTemplate:
        """Administrative update; the type stays SYSTEM."""
        existing = self.get_template_or_raise(template.id)
        template = template.model_copy(
            update={
                "type": TemplateType.SYSTEM,
                "created_at": existing.created_at,
                "updated_at": datetime.now(),
            }
        )
        self._db.templates.update(template)
        return template

    def delete_system_template(self, template_id: str) -> None:
        self.get_template_or_raise(template_id)
        self._db.templates.delete(template_id)
