"""Prompt templates loaded from the packaged YAML files."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml

_PROMPTS_DIR = Path(__file__).parent / "prompts"


@lru_cache(maxsize=8)
def load_prompts(name: str) -> dict[str, str]:
    """Load the prompt set ``prompts/{name}.yaml``.

    Returns:
        Mapping of prompt key (``system``, ``topics``...) to template text.

    Raises:
        FileNotFoundError: If no such prompt set exists.
    """
    path = _PROMPTS_DIR / f"{name}.yaml"
    with path.open(encoding="utf-8") as f:
        result: dict[str, str] = yaml.safe_load(f)
    return result


def render_prompt(name: str, key: str, **values: Any) -> tuple[str, str]:
    """Return ``(system, user)`` for one prompt of a set.

    Args:
        name: Prompt set (``understanding`` or ``script``).
        key: Template key within the set.
        **values: Placeholder values for ``str.format``.
    """
    prompts = load_prompts(name)
    return prompts["system"].strip(), prompts[key].format(**values).strip()
