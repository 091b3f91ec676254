# template.py - Prompt template interpolation
# This file substitutes {{name}} placeholders in prompt templates from the execution context.

import json
import re
from typing import Any, List, Optional

from .errors import InterpolationError

# Plain identifiers only: no expressions, filters or conditionals.
PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*([A-Za-z_][A-Za-z0-9_]*)\s*\}\}")

def variables(template: str) -> List[str]:
    """Names referenced by a template, in first-appearance order."""
    seen: List[str] = []
    for match in PLACEHOLDER_PATTERN.finditer(template):
        name = match.group(1)
        if name not in seen:
            seen.append(name)
    return seen

def _stringify(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, indent=2, ensure_ascii=False, default=str)
    return str(value)

def render(template: str, context, phase_id: Optional[str] = None) -> str:
    """Replace every {{name}} with its context value.

    Raises InterpolationError for the first name that is absent or None.
    """
    def replace_var(match: re.Match) -> str:
        name = match.group(1)
        value = context.get(name)
        if value is None:
            raise InterpolationError(name, phase_id)
        return _stringify(value)

    return PLACEHOLDER_PATTERN.sub(replace_var, template)
