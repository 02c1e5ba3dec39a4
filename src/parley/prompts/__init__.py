"""Prompt text used by the orchestrator and the summarizer.

Packaged defaults live next to this module as ``<name>.txt``. A
``prompts/`` directory in the working directory shadows them file by
file, so a deployment can replace the master prompt without touching
the package.
"""

from functools import lru_cache
from pathlib import Path

_PACKAGE_DIR = Path(__file__).parent


def _search_path() -> list[Path]:
    return [Path.cwd() / "prompts", _PACKAGE_DIR]


@lru_cache(maxsize=16)
def load_prompt(name: str) -> str:
    """Return the stripped text of prompt ``name``.

    Raises:
        FileNotFoundError: No directory on the search path has ``name.txt``.
    """
    candidates = [directory / f"{name}.txt" for directory in _search_path()]
    for candidate in candidates:
        if candidate.is_file():
            return candidate.read_text(encoding="utf-8").strip()

    searched = ", ".join(str(c) for c in candidates)
    raise FileNotFoundError(f"Prompt {name!r} not found (searched {searched})")


def get_master_prompt() -> str:
    """Default system prompt for new conversations."""
    return load_prompt("master")


def get_summary_prompt(lang: str) -> str:
    """Instruction for compressing old history, in the conversation's language."""
    return load_prompt("summary").format(lang=lang)


def clear_cache() -> None:
    load_prompt.cache_clear()


__all__ = [
    "load_prompt",
    "get_master_prompt",
    "get_summary_prompt",
    "clear_cache",
]
