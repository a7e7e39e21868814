"""
Template-specific error types.

All errors inherit from TemplateError for easy catching.
"""


class TemplateError(Exception):
    """Base exception for all template-related failures."""
    pass


class TemplateNotFoundError(TemplateError):
    """Raised when a template id does not resolve."""

    def __init__(self, template_id: str):
        self.template_id = template_id
        super().__init__(f"Template not found: {template_id}")


class TemplateProtectedError(TemplateError):
    """Raised when a user path tries to modify or delete a system template."""

    def __init__(self, template_id: str, action: str):
        self.template_id = template_id
        self.action = action
        super().__init__(f"System template {template_id} cannot be {action}")
