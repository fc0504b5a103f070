from pathlib import Path

import pytest

from codeclaw.tools.edit import EditTool
from codeclaw.tools.glob import GlobTool
from codeclaw.tools.grep import GrepTool
from codeclaw.tools.list_dir import ListTool
from codeclaw.tools.read import ReadTool
from codeclaw.tools.write import WriteTool


@pytest.mark.asyncio
async def test_read_tool_numbers_lines_and_honours_limit(tmp_path: Path):
    target = tmp_path / "sample.txt"
    target.write_text("line1\nline2\nline3\n", encoding="utf-8")

    result = await ReadTool().execute(file_path=str(target), limit=2)

    assert result.is_error is False
    text = result.as_text()
    assert "     1\tline1\n     2\tline2" in text
    assert "line3" not in text
    assert "[lines 1-2 of 3]" in text


@pytest.mark.asyncio
async def test_read_tool_offset_and_relative_path(tmp_path: Path):
    (tmp_path / "a.txt").write_text("one\ntwo\nthree\n", encoding="utf-8")

    result = await ReadTool().execute(file_path="a.txt", offset=3, _runtime_base_path=tmp_path)

    assert result.as_text() == "     3\tthree"


@pytest.mark.asyncio
async def test_read_tool_reports_missing_and_binary_files(tmp_path: Path):
    missing = await ReadTool().execute(file_path=str(tmp_path / "nope.txt"))
    assert missing.is_error
    assert missing.as_text().startswith("Error: File not found")

    binary = tmp_path / "blob.bin"
    binary.write_bytes(b"\x00\x01\x02")
    result = await ReadTool().execute(file_path=str(binary))
    assert result.is_error
    assert "Binary file" in result.as_text()


@pytest.mark.asyncio
async def test_write_tool_creates_parents_and_reports_update(tmp_path: Path):
    target = tmp_path / "nested" / "out.txt"

    created = await WriteTool().execute(file_path=str(target), content="hello")
    updated = await WriteTool().execute(file_path=str(target), content="hello again")

    assert created.as_text().startswith("Created")
    assert updated.as_text().startswith("Updated")
    assert target.read_text(encoding="utf-8") == "hello again"


@pytest.mark.asyncio
async def test_edit_tool_replaces_unique_match(tmp_path: Path):
    target = tmp_path / "app.py"
    target.write_text("x = 1\ny = 2\n", encoding="utf-8")

    result = await EditTool().execute(file_path=str(target), old_string="y = 2", new_string="y = 3")

    assert result.is_error is False
    assert "1 replacement(s)" in result.as_text()
    assert target.read_text(encoding="utf-8") == "x = 1\ny = 3\n"


@pytest.mark.asyncio
async def test_edit_tool_requires_unique_match_unless_replace_all(tmp_path: Path):
    target = tmp_path / "app.py"
    target.write_text("a\na\n", encoding="utf-8")

    ambiguous = await EditTool().execute(file_path=str(target), old_string="a", new_string="b")
    assert ambiguous.is_error
    assert "appears 2 times" in ambiguous.as_text()

    result = await EditTool().execute(file_path=str(target), old_string="a", new_string="b", replace_all=True)
    assert "2 replacement(s)" in result.as_text()
    assert target.read_text(encoding="utf-8") == "b\nb\n"


@pytest.mark.asyncio
async def test_edit_tool_rejects_missing_text(tmp_path: Path):
    target = tmp_path / "app.py"
    target.write_text("content\n", encoding="utf-8")

    result = await EditTool().execute(file_path=str(target), old_string="absent", new_string="x")
    assert result.is_error
    assert "not found" in result.as_text()


@pytest.mark.asyncio
async def test_list_tool_puts_directories_first_and_applies_ignore(tmp_path: Path):
    (tmp_path / "src").mkdir()
    (tmp_path / "b.txt").write_text("b", encoding="utf-8")
    (tmp_path / "a.log").write_text("a", encoding="utf-8")

    result = await ListTool().execute(path=str(tmp_path), ignore=["*.log"])

    lines = result.as_text().splitlines()
    assert lines[1:] == ["  - src/", "  - b.txt"]


@pytest.mark.asyncio
async def test_glob_tool_finds_files_recursively(tmp_path: Path):
    (tmp_path / "pkg").mkdir()
    (tmp_path / "pkg" / "mod.py").write_text("", encoding="utf-8")
    (tmp_path / "top.py").write_text("", encoding="utf-8")
    (tmp_path / "notes.md").write_text("", encoding="utf-8")

    result = await GlobTool().execute(pattern="**/*.py", path=str(tmp_path))

    text = result.as_text()
    assert text.startswith("Found 2 file(s)")
    assert "mod.py" in text
    assert "top.py" in text
    assert "notes.md" not in text


@pytest.mark.asyncio
async def test_grep_tool_matches_with_include_filter(tmp_path: Path):
    (tmp_path / "a.ts").write_text("const needle = 1;\n", encoding="utf-8")
    (tmp_path / "b.tsx").write_text("// needle here\n", encoding="utf-8")
    (tmp_path / "c.py").write_text("needle = 2\n", encoding="utf-8")
    (tmp_path / ".git").mkdir()
    (tmp_path / ".git" / "config.ts").write_text("needle\n", encoding="utf-8")

    result = await GrepTool().execute(pattern="needle", path=str(tmp_path), include="*.{ts,tsx}")

    text = result.as_text()
    assert f"{tmp_path.resolve() / 'a.ts'}:1: const needle = 1;" in text
    assert "b.tsx:1:" in text
    assert "c.py" not in text
    assert ".git" not in text


@pytest.mark.asyncio
async def test_grep_tool_reports_invalid_regex(tmp_path: Path):
    result = await GrepTool().execute(pattern="(unclosed", path=str(tmp_path))
    assert result.is_error
    assert "Invalid regular expression" in result.as_text()
