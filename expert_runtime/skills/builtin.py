"""Built-in base tool server.

The base skill is served by a ``FastMCP`` server created in-process, so the
runtime can reach it over memory streams without spawning a subprocess. Each
server owns its own todo list.
"""

from __future__ import annotations

import asyncio
import mimetypes
import os
import shutil
import textwrap
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from mcp.server.fastmcp import FastMCP
from pydantic import BaseModel, Field

from ..constants import ATTEMPT_COMPLETION_TOOL, BASE_SKILL_NAME
from ..core.logging_config import get_logger

logger = get_logger(__name__)

MAX_WRITE_CHARS = 10_000
MAX_IMAGE_BYTES = 15 * 1024 * 1024
MAX_PDF_BYTES = 30 * 1024 * 1024
IMAGE_MIME_TYPES = ("image/png", "image/jpeg", "image/gif", "image/webp")
DEFAULT_EXEC_TIMEOUT_MS = 60_000
NO_OUTPUT_MESSAGE = "Command executed successfully, but produced no output."


class ThinkOutput(BaseModel):
    thought: str
    next_thought_needed: bool = Field(serialization_alias="nextThoughtNeeded")


class TodoItem(BaseModel):
    id: int
    title: str
    completed: bool = False


class TodoOutput(BaseModel):
    todos: List[TodoItem]


class CompletionOutput(BaseModel):
    remaining_todos: Optional[List[TodoItem]] = Field(default=None, serialization_alias="remainingTodos")


class FileReadOutput(BaseModel):
    path: str
    content: str
    from_line: int = Field(serialization_alias="from")
    to_line: int = Field(serialization_alias="to")


class FileWriteOutput(BaseModel):
    path: str
    text: str


class DirectoryEntry(BaseModel):
    name: str
    path: str
    type: str
    size: int
    modified: str


class DirectoryOutput(BaseModel):
    path: str
    items: List[DirectoryEntry]


class FileInfoOutput(BaseModel):
    exists: bool
    path: str
    absolute_path: str = Field(serialization_alias="absolutePath")
    name: str
    directory: str
    extension: Optional[str] = None
    type: str
    size: int
    created: str
    modified: str
    accessed: str
    permissions: dict


class FileEditOutput(BaseModel):
    path: str
    new_text: str = Field(serialization_alias="newText")
    old_text: str = Field(serialization_alias="oldText")


class FileMediaOutput(BaseModel):
    path: str
    mime_type: str = Field(serialization_alias="mimeType")
    size: int


class PathOutput(BaseModel):
    path: str


class ExecOutput(BaseModel):
    output: str


class ToolErrorOutput(BaseModel):
    error: str
    message: str


class TodoList:
    def __init__(self) -> None:
        self.next_id = 0
        self.todos: List[TodoItem] = []

    def process(self, new_todos: Optional[List[str]], completed_todos: Optional[List[int]]) -> TodoOutput:
        for title in new_todos or []:
            self.todos.append(TodoItem(id=self.next_id, title=title))
            self.next_id += 1
        if completed_todos:
            for todo in self.todos:
                todo.completed = todo.completed or todo.id in completed_todos
        return TodoOutput(todos=list(self.todos))

    def clear(self) -> TodoOutput:
        self.todos = []
        self.next_id = 0
        return TodoOutput(todos=[])

    def remaining(self) -> List[TodoItem]:
        return [todo for todo in self.todos if not todo.completed]


def _iso(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


def _dump(output: BaseModel) -> str:
    return output.model_dump_json(by_alias=True, exclude_none=True)


def _error(e: Exception) -> str:
    logger.debug("Base tool failed: %s", e)
    return _dump(ToolErrorOutput(error=type(e).__name__, message=str(e)))


def validate_path(path: str, root: Path) -> Path:
    """Resolve ``path`` against ``root`` and refuse anything outside it.

    Raises:
        PermissionError: If the resolved path escapes ``root``.
    """
    candidate = Path(os.path.expanduser(path))
    resolved = (candidate if candidate.is_absolute() else root / candidate).resolve()
    if resolved != root and root not in resolved.parents:
        raise PermissionError(f"Access denied - path outside allowed directories: {path}")
    return resolved


def _writable_file(path: str, root: Path) -> Path:
    target = validate_path(path, root)
    if not target.is_file():
        raise FileNotFoundError(f"File {path} does not exist")
    if not os.access(target, os.W_OK):
        raise PermissionError(f"File {path} is not writable")
    return target


def _media_file(path: str, root: Path, allowed: Sequence[str], max_bytes: int) -> FileMediaOutput:
    target = validate_path(path, root)
    if not target.is_file():
        raise FileNotFoundError(f"File {path} does not exist")
    mime_type, _ = mimetypes.guess_type(target.name)
    if mime_type not in allowed:
        raise ValueError(f"File {path} is not supported")
    size = target.stat().st_size
    if size > max_bytes:
        raise ValueError(
            f"File too large ({size / (1024 * 1024):.1f}MB). Maximum supported size is {max_bytes // (1024 * 1024)}MB"
        )
    return FileMediaOutput(path=str(target), mime_type=mime_type, size=size)


async def run_command(
    command: str,
    args: Sequence[str],
    env: Dict[str, str],
    cwd: Path,
    capture_stdout: bool,
    capture_stderr: bool,
    timeout: float,
) -> str:
    """Run ``command`` without a shell and return the captured streams, stdout first.

    Raises:
        TimeoutError: If the command outlives ``timeout`` seconds; the process is killed.
    """
    process = await asyncio.create_subprocess_exec(
        command,
        *args,
        cwd=str(cwd),
        env={**os.environ, **env},
        stdout=asyncio.subprocess.PIPE if capture_stdout else asyncio.subprocess.DEVNULL,
        stderr=asyncio.subprocess.PIPE if capture_stderr else asyncio.subprocess.DEVNULL,
    )
    try:
        out, err = await asyncio.wait_for(process.communicate(), timeout)
    except asyncio.TimeoutError:
        process.kill()
        await process.wait()
        raise asyncio.TimeoutError(f"Command {command} timed out after {timeout}s")
    output = (out or b"").decode(errors="replace") + (err or b"").decode(errors="replace")
    return output or NO_OUTPUT_MESSAGE


def create_base_server(root: Optional[str] = None) -> FastMCP:
    """Create the base tool server confined to ``root`` (default: the working directory)."""
    workspace = Path(root or os.getcwd()).resolve()
    todo_list = TodoList()
    server = FastMCP(BASE_SKILL_NAME)

    @server.tool(
        name="think",
        description=textwrap.dedent(
            """\
            Sequential thinking tool for step-by-step problem analysis and solution development.
            Use it to break a problem into steps, revise earlier thoughts and verify hypotheses
            before acting. The thought is recorded and returned unchanged."""
        ),
    )
    async def think(thought: str, nextThoughtNeeded: bool = False) -> str:
        return _dump(ThinkOutput(thought=thought, next_thought_needed=nextThoughtNeeded))

    @server.tool(
        name="todo",
        description=textwrap.dedent(
            """\
            Todo list manager that tracks tasks and their completion status.
            Each todo gets a unique ID when created and the full list is returned after every call.
            newTodos adds tasks; completedTodos marks the given todo ids as completed."""
        ),
    )
    async def todo(newTodos: Optional[List[str]] = None, completedTodos: Optional[List[int]] = None) -> str:
        return _dump(todo_list.process(newTodos, completedTodos))

    @server.tool(name="clearTodo", description="Clears the todo list and resets todo ids.")
    async def clear_todo() -> str:
        return _dump(todo_list.clear())

    @server.tool(
        name=ATTEMPT_COMPLETION_TOOL,
        description=textwrap.dedent(
            """\
            Task completion signal. Call this tool ONLY, without any text, once the task is complete.
            If todos remain incomplete they are returned and the task continues; otherwise an empty
            object is returned and you will be asked for the final result."""
        ),
    )
    async def attempt_completion() -> str:
        remaining = todo_list.remaining()
        return _dump(CompletionOutput(remaining_todos=remaining or None))

    @server.tool(
        name="readTextFile",
        description="Read a UTF-8 text file, optionally limited to a 1-based inclusive line range.",
    )
    async def read_text_file(path: str, fromLine: Optional[int] = None, toLine: Optional[int] = None) -> str:
        try:
            target = validate_path(path, workspace)
            if not target.is_file():
                raise FileNotFoundError(f"File {path} does not exist")
            lines = target.read_text(encoding="utf-8").split("\n")
            start = max((fromLine or 1) - 1, 0)
            end = min(toLine or len(lines), len(lines))
            return _dump(FileReadOutput(path=str(target), content="\n".join(lines[start:end]), from_line=start + 1, to_line=end))
        except (OSError, UnicodeDecodeError) as e:
            return _error(e)

    @server.tool(
        name="writeTextFile",
        description=textwrap.dedent(
            f"""\
            Create or overwrite a UTF-8 text file, creating parent directories as needed.
            IF THE FILE ALREADY EXISTS, IT WILL BE OVERWRITTEN. Text is limited to {MAX_WRITE_CHARS} characters."""
        ),
    )
    async def write_text_file(path: str, text: str) -> str:
        try:
            if len(text) > MAX_WRITE_CHARS:
                raise ValueError(f"Text exceeds {MAX_WRITE_CHARS} characters")
            target = validate_path(path, workspace)
            if target.exists() and not os.access(target, os.W_OK):
                raise PermissionError(f"File {path} is not writable")
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(text, encoding="utf-8")
            return _dump(FileWriteOutput(path=str(target), text=text))
        except (OSError, ValueError) as e:
            return _error(e)

    @server.tool(name="listDirectory", description="List the entries of a directory with type, size and modification time.")
    async def list_directory(path: str) -> str:
        try:
            target = validate_path(path, workspace)
            if not target.is_dir():
                raise NotADirectoryError(f"Directory {path} does not exist")
            items = []
            for entry in sorted(target.iterdir(), key=lambda p: p.name):
                stat = entry.stat()
                items.append(
                    DirectoryEntry(
                        name=entry.name,
                        path=str(entry.relative_to(target)),
                        type="directory" if entry.is_dir() else "file",
                        size=stat.st_size,
                        modified=_iso(stat.st_mtime),
                    )
                )
            return _dump(DirectoryOutput(path=str(target), items=items))
        except OSError as e:
            return _error(e)

    @server.tool(name="getFileInfo", description="Get metadata about a file or directory.")
    async def get_file_info(path: str) -> str:
        try:
            target = validate_path(path, workspace)
            if not target.exists():
                raise FileNotFoundError(f"File or directory {path} does not exist")
            stat = target.stat()
            return _dump(
                FileInfoOutput(
                    exists=True,
                    path=path,
                    absolute_path=str(target),
                    name=target.name,
                    directory=str(target.parent),
                    extension=target.suffix or None,
                    type="directory" if target.is_dir() else "file",
                    size=stat.st_size,
                    created=_iso(stat.st_ctime),
                    modified=_iso(stat.st_mtime),
                    accessed=_iso(stat.st_atime),
                    permissions={
                        "readable": os.access(target, os.R_OK),
                        "writable": os.access(target, os.W_OK),
                        "executable": os.access(target, os.X_OK),
                    },
                )
            )
        except OSError as e:
            return _error(e)

    @server.tool(
        name="appendTextFile",
        description=textwrap.dedent(
            """\
            Append text to the end of an existing UTF-8 file without touching its current content.
            THE FILE MUST EXIST BEFORE APPENDING."""
        ),
    )
    async def append_text_file(path: str, text: str) -> str:
        try:
            target = _writable_file(path, workspace)
            with target.open("a", encoding="utf-8") as f:
                f.write(text)
            return _dump(FileWriteOutput(path=str(target), text=text))
        except OSError as e:
            return _error(e)

    @server.tool(
        name="editTextFile",
        description=textwrap.dedent(
            """\
            Replace the first exact occurrence of oldText with newText in an existing UTF-8 file.
            Line endings are normalized to \\n. Use appendTextFile to add text at the end."""
        ),
    )
    async def edit_text_file(path: str, newText: str, oldText: str) -> str:
        try:
            target = _writable_file(path, workspace)
            content = target.read_text(encoding="utf-8").replace("\r\n", "\n")
            old, new = oldText.replace("\r\n", "\n"), newText.replace("\r\n", "\n")
            if old not in content:
                raise ValueError(f"Could not find exact match for oldText in file {path}")
            target.write_text(content.replace(old, new, 1), encoding="utf-8")
            return _dump(FileEditOutput(path=str(target), new_text=newText, old_text=oldText))
        except (OSError, UnicodeDecodeError, ValueError) as e:
            return _error(e)

    @server.tool(name="deleteFile", description="Delete a single file from the workspace.")
    async def delete_file(path: str) -> str:
        try:
            target = validate_path(path, workspace)
            if not target.exists():
                raise FileNotFoundError(f"File {path} does not exist")
            if target.is_dir():
                raise IsADirectoryError(f"Path {path} is a directory. Use deleteDirectory instead")
            target.unlink()
            return _dump(PathOutput(path=str(target)))
        except OSError as e:
            return _error(e)

    @server.tool(
        name="deleteDirectory",
        description="Delete a directory from the workspace. Non-empty directories need recursive=true.",
    )
    async def delete_directory(path: str, recursive: bool = False) -> str:
        try:
            target = validate_path(path, workspace)
            if target == workspace:
                raise PermissionError("Access denied - the workspace root cannot be deleted")
            if not target.exists():
                raise FileNotFoundError(f"Directory {path} does not exist")
            if not target.is_dir():
                raise NotADirectoryError(f"Path {path} is not a directory. Use deleteFile instead")
            if recursive:
                shutil.rmtree(target)
            else:
                target.rmdir()
            return _dump(PathOutput(path=str(target)))
        except OSError as e:
            return _error(e)

    @server.tool(
        name="readImageFile",
        description=textwrap.dedent(
            f"""\
            Load a PNG, JPEG, GIF or WebP image so it can be shown to the model.
            Files larger than {MAX_IMAGE_BYTES // (1024 * 1024)}MB are rejected."""
        ),
    )
    async def read_image_file(path: str) -> str:
        try:
            return _dump(_media_file(path, workspace, IMAGE_MIME_TYPES, MAX_IMAGE_BYTES))
        except (OSError, ValueError) as e:
            return _error(e)

    @server.tool(
        name="readPdfFile",
        description=textwrap.dedent(
            f"""\
            Load a PDF document so it can be shown to the model. No text extraction is done.
            Files larger than {MAX_PDF_BYTES // (1024 * 1024)}MB are rejected."""
        ),
    )
    async def read_pdf_file(path: str) -> str:
        try:
            return _dump(_media_file(path, workspace, ("application/pdf",), MAX_PDF_BYTES))
        except (OSError, ValueError) as e:
            return _error(e)

    @server.tool(
        name="exec",
        description=textwrap.dedent(
            """\
            Run a command (no shell) inside the workspace and return its captured output.
            stdout and stderr choose which streams are captured; timeout is in milliseconds."""
        ),
    )
    async def exec_command(
        command: str,
        args: Optional[List[str]] = None,
        env: Optional[Dict[str, str]] = None,
        cwd: str = ".",
        stdout: bool = True,
        stderr: bool = True,
        timeout: int = DEFAULT_EXEC_TIMEOUT_MS,
    ) -> str:
        try:
            output = await run_command(
                command, args or [], env or {}, validate_path(cwd, workspace), stdout, stderr, timeout / 1000
            )
            return _dump(ExecOutput(output=output))
        except (OSError, asyncio.TimeoutError) as e:
            return _error(e)

    return server
