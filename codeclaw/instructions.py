"""Load and render LLM instruction templates from disk.

Supports a two-layer override system:
  1. Personal overrides in ``~/.codeclaw/instructions/`` (highest priority)
  2. Packaged defaults in ``codeclaw/prompts/``

The system prompt is rendered from ``system_prompt.md`` with the working
directory context, and an ``AGENTS.md`` found in the working directory is
appended as custom instructions.
"""

from __future__ import annotations

import os
import sys
from datetime import date
from pathlib import Path
from typing import Mapping

from codeclaw.logging import get_logger

log = get_logger(__name__)

_PERSONAL_DIR = Path("~/.codeclaw/instructions").expanduser()
SYSTEM_PROMPT_TEMPLATE = "system_prompt.md"
CUSTOM_INSTRUCTIONS_FILENAME = "AGENTS.md"


class _SafeFormatDict(dict[str, str]):
    """Leave unknown placeholders untouched instead of raising KeyError."""

    def __missing__(self, key: str) -> str:
        return "{" + key + "}"


class InstructionLoader:
    """Read and render instruction templates with personal-override support.

    Resolution order for every template:
      1. ``personal_dir / name``  (``~/.codeclaw/instructions/``)
      2. ``base_dir / name``      (packaged ``prompts/``)
    """

    def __init__(
        self,
        base_dir: Path | str | None = None,
        personal_dir: Path | str | None = None,
    ):
        self.base_dir = self._resolve_base_dir(base_dir)
        self.personal_dir: Path = (
            Path(personal_dir).expanduser().resolve()
            if personal_dir is not None
            else _PERSONAL_DIR.resolve()
        )
        self._cache: dict[str, str] = {}

    @staticmethod
    def _resolve_base_dir(base_dir: Path | str | None) -> Path:
        if base_dir is not None:
            return Path(base_dir).expanduser().resolve()
        env_dir = os.getenv("CODECLAW_INSTRUCTIONS_DIR")
        if env_dir:
            return Path(env_dir).expanduser().resolve()
        return (Path(__file__).resolve().parent / "prompts").resolve()

    def _path(self, name: str) -> Path:
        """Return the effective file path, preferring the personal override."""
        personal = self.personal_dir / name
        if personal.is_file():
            return personal
        return self.base_dir / name

    def load(self, name: str) -> str:
        """Load instruction template content by filename."""
        cached = self._cache.get(name)
        if cached is not None:
            return cached

        path = self._path(name)
        if not path.is_file():
            raise FileNotFoundError(
                f"Instruction template not found: {path}. "
                "Add the file under the prompts folder."
            )
        content = path.read_text(encoding="utf-8").strip()
        self._cache[name] = content
        return content

    def render(self, name: str, **variables: object) -> str:
        """Render template with simple ``str.format`` placeholder substitution."""
        template = self.load(name)
        values: Mapping[str, str] = {k: str(v) for k, v in variables.items()}
        return template.format_map(_SafeFormatDict(values))


def load_custom_instruction(working_dir: Path | str) -> str | None:
    """Contents of ``AGENTS.md`` in the working directory, if any."""
    path = Path(working_dir) / CUSTOM_INSTRUCTIONS_FILENAME
    if not path.is_file():
        return None
    try:
        content = path.read_text(encoding="utf-8").strip()
    except OSError as e:
        log.warning("Could not read custom instructions", path=str(path), error=str(e))
        return None
    return content or None


def is_git_repo(path: Path | str) -> bool:
    """Whether ``path`` or one of its parents holds a ``.git`` entry."""
    current = Path(path).resolve()
    for candidate in (current, *current.parents):
        if (candidate / ".git").exists():
            return True
    return False


def build_system_prompt(
    working_dir: Path | str | None = None,
    today: date | None = None,
    platform: str | None = None,
    loader: InstructionLoader | None = None,
) -> str:
    """Render the main system prompt for a session rooted at ``working_dir``."""
    cwd = Path(working_dir or Path.cwd()).resolve()
    loader = loader or InstructionLoader()
    prompt = loader.render(
        SYSTEM_PROMPT_TEMPLATE,
        working_directory=cwd,
        is_git_repo="Yes" if is_git_repo(cwd) else "No",
        platform=platform or sys.platform,
        today=(today or date.today()).isoformat(),
    )
    custom = load_custom_instruction(cwd)
    if custom:
        prompt += f"\n\n## Custom Instructions\n\n{custom}"
    return prompt
