from datetime import date
from pathlib import Path

from codeclaw.instructions import InstructionLoader, build_system_prompt, is_git_repo, load_custom_instruction


def _loader(tmp_path: Path) -> InstructionLoader:
    return InstructionLoader(personal_dir=tmp_path / "personal")


def test_system_prompt_renders_environment(tmp_path: Path):
    (tmp_path / ".git").mkdir()

    prompt = build_system_prompt(tmp_path, today=date(2026, 1, 2), platform="linux", loader=_loader(tmp_path))

    assert f"Working directory: {tmp_path.resolve()}" in prompt
    assert "Is directory a git repo: Yes" in prompt
    assert "Platform: linux" in prompt
    assert "Today's date: 2026-01-02" in prompt
    assert "Custom Instructions" not in prompt


def test_system_prompt_appends_agents_md(tmp_path: Path):
    project = tmp_path / "project"
    project.mkdir()
    (project / "AGENTS.md").write_text("Use tabs.\n", encoding="utf-8")

    prompt = build_system_prompt(project, loader=_loader(tmp_path))

    assert prompt.endswith("## Custom Instructions\n\nUse tabs.")


def test_personal_override_wins(tmp_path: Path):
    personal = tmp_path / "personal"
    personal.mkdir()
    (personal / "system_prompt.md").write_text("Custom prompt for {platform} {unknown}", encoding="utf-8")

    prompt = build_system_prompt(tmp_path, platform="darwin", loader=_loader(tmp_path))

    assert prompt == "Custom prompt for darwin {unknown}"


def test_git_detection_walks_parents(tmp_path: Path):
    nested = tmp_path / "a" / "b"
    nested.mkdir(parents=True)
    assert is_git_repo(nested) is False

    (tmp_path / ".git").mkdir()
    assert is_git_repo(nested) is True


def test_empty_agents_md_is_ignored(tmp_path: Path):
    (tmp_path / "AGENTS.md").write_text("   \n", encoding="utf-8")
    assert load_custom_instruction(tmp_path) is None
