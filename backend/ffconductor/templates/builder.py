"""
Command template expansion.

Placeholders are replaced by plain substring substitution, in this order:

1. ``{input}`` and ``{output}``
2. caller parameters, ``{key}`` -> value, in mapping order
3. fallbacks for ``{encoder}``, ``{audio_encoder}`` and ``{crf}``

Fallbacks come last so they also fill tokens a parameter value reintroduced.
Nothing is quoted or escaped here; templates quote their own path
placeholders. Unknown placeholders are left verbatim.
"""

from typing import Dict, Mapping, Optional

from .models import CommandTemplate


DEFAULT_VIDEO_ENCODER = "libx264"
DEFAULT_AUDIO_ENCODER = "aac"
DEFAULT_CRF = "23"

FALLBACK_PARAMETERS: Dict[str, str] = {
    "encoder": DEFAULT_VIDEO_ENCODER,
    "audio_encoder": DEFAULT_AUDIO_ENCODER,
    "crf": DEFAULT_CRF,
}


def build_command(
    template: CommandTemplate,
    input_path: str,
    output_path: str,
    parameters: Optional[Mapping[str, str]] = None,
) -> str:
    """
    Expand a template into a concrete FFmpeg argument string.

    Args:
        template: Template whose `command_args` is expanded
        input_path: Replaces ``{input}``
        output_path: Replaces ``{output}``
        parameters: Extra ``{key}`` substitutions applied after the paths

    Returns:
        Argument string (without the executable)
    """
    command = template.command_args
    command = command.replace("{input}", input_path)
    command = command.replace("{output}", output_path)

    if parameters:
        for key, value in parameters.items():
            command = command.replace("{" + key + "}", str(value))

    for key, value in FALLBACK_PARAMETERS.items():
        command = command.replace("{" + key + "}", value)

    return command
