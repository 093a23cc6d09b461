from __future__ import annotations

import re
from typing import Mapping

_PLACEHOLDER_RE = re.compile(r"\{\{(\w+)\}\}", re.ASCII)


def expand(template: str, replacements: Mapping[str, str]) -> str:
    """
    Replace every `{{name}}` placeholder with replacements[name].

    Unknown names expand to an empty string. Anything that is not a
    well-formed placeholder is left as-is.
    """
    return _PLACEHOLDER_RE.sub(lambda m: replacements.get(m.group(1)) or "", template)
