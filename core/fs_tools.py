"""Read-only filesystem tools the oracle may call while writing a diff.

Each toolset is bound to one SandboxSession; every call goes through
core.sandbox, so the oracle is held to the same containment and extension
rules as the pipeline itself.
"""

from core import sandbox
from utils.llm import Tool


def number_lines(content, start=1):
    """Prefix each line with its 1-based number: ``"1: first line"``."""
    lines = content.split("\n")
    return "\n".join(f"{start + i}: {line}" for i, line in enumerate(lines))


def build_toolset(session):
    """Return {name: Tool} for read_file, count_lines, and list_files."""

    async def read_file(args):
        content = sandbox.read_file(session, args.get("path", ""))
        return number_lines(content)

    async def count_lines(args):
        content = sandbox.read_file(session, args.get("path", ""))
        lines = content.split("\n")
        start = args.get("start_line")
        end = args.get("end_line")
        if start is None and end is None:
            return {"total_lines": len(lines), "content": number_lines(content)}

        start = max(int(start or 1), 1)
        end = min(int(end or len(lines)), len(lines))
        selected = lines[start - 1:end]
        return {
            "total_lines": len(lines),
            "selected_lines": f"{start}-{end}",
            "content": number_lines("\n".join(selected), start=start),
        }

    async def list_files(args):
        return sandbox.list_dir(session, args.get("path", "."))

    path_schema = {
        "type": "object",
        "properties": {"path": {"type": "string", "description": "Path relative to the workspace"}},
        "required": ["path"],
    }

    return {
        "read_file": Tool(
            description="Read a file with line numbers prefixed (\"1: first line\").",
            input_schema=path_schema,
            handler=read_file,
        ),
        "count_lines": Tool(
            description="Count lines in a file, optionally returning a numbered line range.",
            input_schema={
                "type": "object",
                "properties": {
                    "path": {"type": "string"},
                    "start_line": {"type": "integer", "minimum": 1},
                    "end_line": {"type": "integer", "minimum": 1},
                },
                "required": ["path"],
            },
            handler=count_lines,
        ),
        "list_files": Tool(
            description="List the files and directories at a path in the workspace.",
            input_schema={
                "type": "object",
                "properties": {"path": {"type": "string", "default": "."}},
            },
            handler=list_files,
        ),
    }
