from pathlib import Path

import pytest

from codeclaw.tools.multi_edit import MultiEditTool


@pytest.mark.asyncio
async def test_multi_edit_applies_edits_in_order(tmp_path: Path):
    target = tmp_path / "app.py"
    target.write_text("def old():\n    return old_value\n\nold()\n", encoding="utf-8")

    result = await MultiEditTool().execute(
        file_path=str(target),
        edits=[
            {"old_string": "def old():", "new_string": "def new():"},
            {"old_string": "old()", "new_string": "new()"},
            {"old_string": "old_value", "new_string": "value", "replace_all": True},
        ],
    )

    assert result.is_error is False
    assert "3 edit(s), 3 replacement(s)" in result.as_text()
    assert target.read_text(encoding="utf-8") == "def new():\n    return value\n\nnew()\n"


@pytest.mark.asyncio
async def test_multi_edit_later_edits_see_earlier_results(tmp_path: Path):
    target = tmp_path / "notes.txt"
    target.write_text("alpha\n", encoding="utf-8")

    result = await MultiEditTool().execute(
        file_path=str(target),
        edits=[
            {"old_string": "alpha", "new_string": "beta"},
            {"old_string": "beta", "new_string": "gamma"},
        ],
    )

    assert result.is_error is False
    assert target.read_text(encoding="utf-8") == "gamma\n"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("bad_edit", "message"),
    [
        ({"old_string": "absent", "new_string": "x"}, "Edit 2: old_string not found"),
        ({"old_string": "x", "new_string": "y"}, "Edit 2: old_string appears 2 times"),
        ({"old_string": "same", "new_string": "same"}, "Edit 2: old_string and new_string are identical"),
        ({"old_string": "", "new_string": "x"}, "Edit 2: old_string must not be empty"),
    ],
)
async def test_multi_edit_is_atomic_when_any_edit_fails(tmp_path: Path, bad_edit: dict, message: str):
    target = tmp_path / "app.py"
    original = "first\nx\nx\n"
    target.write_text(original, encoding="utf-8")

    result = await MultiEditTool().execute(
        file_path=str(target),
        edits=[{"old_string": "first", "new_string": "changed"}, bad_edit],
    )

    assert result.is_error
    assert message in result.as_text()
    assert "No edits were applied." in result.as_text()
    assert target.read_text(encoding="utf-8") == original


@pytest.mark.asyncio
async def test_multi_edit_creates_a_file_from_an_empty_first_edit(tmp_path: Path):
    target = tmp_path / "pkg" / "new.py"

    result = await MultiEditTool().execute(
        file_path=str(target),
        edits=[
            {"old_string": "", "new_string": "NAME = 'draft'\n"},
            {"old_string": "draft", "new_string": "final"},
        ],
    )

    assert result.is_error is False
    assert target.read_text(encoding="utf-8") == "NAME = 'final'\n"


@pytest.mark.asyncio
async def test_multi_edit_rejects_missing_file_and_malformed_edits(tmp_path: Path):
    missing = await MultiEditTool().execute(
        file_path=str(tmp_path / "missing.py"),
        edits=[{"old_string": "a", "new_string": "b"}],
    )
    assert missing.is_error
    assert "File not found" in missing.as_text()

    target = tmp_path / "app.py"
    target.write_text("a\n", encoding="utf-8")
    malformed = await MultiEditTool().execute(file_path=str(target), edits=[{"old_string": "a"}])
    assert malformed.is_error
    assert "invalid edits" in malformed.as_text()

    empty = await MultiEditTool().execute(file_path=str(target), edits=[])
    assert empty.is_error
    assert target.read_text(encoding="utf-8") == "a\n"


@pytest.mark.asyncio
async def test_multi_edit_resolves_relative_paths_from_runtime_base(tmp_path: Path):
    (tmp_path / "cfg.toml").write_text("debug = false\n", encoding="utf-8")

    result = await MultiEditTool().execute(
        file_path="cfg.toml",
        edits=[{"old_string": "false", "new_string": "true"}],
        _runtime_base_path=tmp_path,
    )

    assert result.is_error is False
    assert (tmp_path / "cfg.toml").read_text(encoding="utf-8") == "debug = true\n"
