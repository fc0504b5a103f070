import pytest

from codeclaw.tools.todo import TodoStore, TodoWriteTool


def _todo(id: str, content: str, status: str) -> dict:
    return {"id": id, "content": content, "status": status, "priority": "medium"}


@pytest.mark.asyncio
async def test_todo_write_replaces_store_and_reports_progress():
    store = TodoStore()
    tool = TodoWriteTool(store)

    result = await tool.execute(
        todos=[
            _todo("1", "Read the code", "completed"),
            _todo("2", "Write the fix", "in_progress"),
            _todo("3", "Run tests", "pending"),
        ]
    )

    assert result.is_error is False
    text = result.as_text()
    assert text.startswith("Todos have been modified successfully.")
    assert 'Currently working on: "Write the fix".' in text
    assert "Progress: 1/3 tasks completed." in text
    assert [item.id for item in store.current_todos()] == ["1", "2", "3"]


@pytest.mark.asyncio
async def test_todo_write_rejects_multiple_in_progress():
    store = TodoStore()
    tool = TodoWriteTool(store)

    result = await tool.execute(todos=[_todo("1", "a", "in_progress"), _todo("2", "b", "in_progress")])

    assert result.is_error is True
    assert "Only one task can be in_progress at a time" in result.as_text()
    assert store.current_todos() == []


@pytest.mark.asyncio
async def test_todo_write_rejects_invalid_items():
    tool = TodoWriteTool(TodoStore())

    assert (await tool.execute(todos=[_todo("1", "", "pending")])).is_error
    assert (await tool.execute(todos=[_todo("1", "x", "blocked")])).is_error
    assert (await tool.execute(todos="not a list")).is_error


def test_store_clear():
    store = TodoStore()
    store.replace([])
    store.clear()
    assert store.current_todos() == []
