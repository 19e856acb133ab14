from __future__ import annotations

from functools import lru_cache
from importlib import resources
from typing import Any

PROMPTS_PACKAGE = "intelimed.prompts"


@lru_cache
def load_template(name: str, package: str = PROMPTS_PACKAGE) -> str:
    """Read a packaged prompt template once and cache it.

    importlib.resources works the same from a source checkout and an installed wheel.
    """
    return resources.files(package).joinpath(name).read_text(encoding="utf-8")


def render(name: str, **kwargs: Any) -> str:
    """Fill a template with str.format; literal braces in templates are doubled."""
    return load_template(name).format(**kwargs).strip()
