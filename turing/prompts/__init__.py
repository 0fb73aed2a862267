"""
Prompt Loading Utilities
========================

Functions for loading the instructional templates bundled with the package.
"""

from importlib import resources
from pathlib import Path
from typing import Optional

PROMPTS_PACKAGE = "turing.prompts"


def _get_prompt_path(name: str):
    return resources.files(PROMPTS_PACKAGE) / f"{name}.md"


def load_prompt(name: str) -> str:
    """
    Load a prompt template from the prompts package.

    Args:
        name: Name of the prompt file (without .md extension)

    Returns:
        Prompt text
    """
    return _get_prompt_path(name).read_text(encoding="utf-8")


def load_template(path: Optional[Path] = None) -> str:
    """
    Load the pre-compaction template.

    Args:
        path: Template file overriding the packaged one

    Returns:
        Template text; the packaged default when ``path`` is None
    """
    if path is not None:
        return Path(path).read_text(encoding="utf-8")
    return load_prompt("precompact")
