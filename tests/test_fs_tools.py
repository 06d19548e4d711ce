"""Tests for core.fs_tools."""

import pytest

from core import sandbox
from core.errors import PathEscape
from core.fs_tools import build_toolset, number_lines


def test_number_lines():
    assert number_lines("a\nb") == "1: a\n2: b"
    assert number_lines("x", start=7) == "7: x"


@pytest.mark.asyncio
async def test_read_file_is_numbered(session):
    sandbox.copy_in(session, "f.tsx", "one\ntwo")
    tools = build_toolset(session)
    assert await tools["read_file"].handler({"path": "f.tsx"}) == "1: one\n2: two"


@pytest.mark.asyncio
async def test_count_lines_range(session):
    sandbox.copy_in(session, "f.tsx", "a\nb\nc\nd")
    tools = build_toolset(session)

    whole = await tools["count_lines"].handler({"path": "f.tsx"})
    assert whole["total_lines"] == 4

    part = await tools["count_lines"].handler({"path": "f.tsx", "start_line": 2, "end_line": 3})
    assert part == {"total_lines": 4, "selected_lines": "2-3", "content": "2: b\n3: c"}


@pytest.mark.asyncio
async def test_list_files(session):
    sandbox.copy_in(session, "f.tsx", "x")
    tools = build_toolset(session)
    assert await tools["list_files"].handler({}) == [{"name": "f.tsx", "type": "file"}]


@pytest.mark.asyncio
async def test_tools_are_confined_to_session(session):
    tools = build_toolset(session)
    with pytest.raises(PathEscape):
        await tools["read_file"].handler({"path": "../../etc/passwd"})


def test_toolset_is_read_only(session):
    assert set(build_toolset(session)) == {"read_file", "count_lines", "list_files"}
