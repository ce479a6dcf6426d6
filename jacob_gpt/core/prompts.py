"""
Prompt template loading.

Templates are stored as ``prompts/<agent>/<name>.<role>.txt`` inside the
package and use ``{{key}}`` placeholders.
"""

import re
from pathlib import Path
from typing import Any, Mapping, Optional

PROMPTS_DIR = Path(__file__).resolve().parent.parent / "prompts"

_PLACEHOLDER = re.compile(r"\{\{\s*(\w+)\s*\}\}")


def template_path(agent: str, name: str, role: str) -> Path:
    return PROMPTS_DIR / agent / f"{name}.{role}.txt"


def parse_template(
    agent: str,
    name: str,
    role: str,
    params: Optional[Mapping[str, Any]] = None,
) -> str:
    """Render a prompt template.

    Args:
        agent: Template group, e.g. "dev"
        name: Template name, e.g. "vision"
        role: "system" or "user"
        params: Values substituted for ``{{key}}`` placeholders

    Returns:
        Rendered template text. Placeholders without a value are left as-is.

    Raises:
        FileNotFoundError: If the template does not exist
    """
    path = template_path(agent, name, role)
    if not path.exists():
        raise FileNotFoundError(f"Prompt template not found: {agent}/{name}.{role}")

    template = path.read_text(encoding="utf-8")
    values = params or {}

    def _replace(match: "re.Match[str]") -> str:
        key = match.group(1)
        if key not in values:
            return match.group(0)
        return str(values[key])

    return _PLACEHOLDER.sub(_replace, template)
