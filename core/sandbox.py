"""Sandbox filesystem gateway: containment, extension allowlist, size bounds.

Every file operation the pipeline performs goes through this module and is
validated against an explicit SandboxSession. There is no process-wide
"current root".
"""

import hashlib
import logging
import os
import shutil
import tempfile
import uuid

from config.defaults import DEFAULTS
from core.errors import ContentTooLarge, ExtensionDenied, FileTooLarge, PathEscape
from core.state import SandboxSession

logger = logging.getLogger(__name__)

ALLOW_ALL = "*"
NEW_FILE_MODE = 0o644


def file_hash(content):
    """SHA-1 hex digest of text content, used as the optimistic-concurrency token."""
    return hashlib.sha1(content.encode("utf-8")).hexdigest()


# ---------------------------------------------------------------------------
# Session lifecycle
# ---------------------------------------------------------------------------

def create_session(base_dir=None, allowed_extensions=None, max_artifact_bytes=None):
    """Allocate a fresh, uniquely named sandbox directory.

    Args:
        base_dir: Parent directory (default: system temp dir).
        allowed_extensions: Iterable of extensions like ".tsx"; "*" allows all.
        max_artifact_bytes: Upper bound for any single read or write.

    Returns:
        A SandboxSession whose root exists and is empty.
    """
    base = base_dir or tempfile.gettempdir()
    os.makedirs(base, exist_ok=True)

    session_id = uuid.uuid4().hex
    root = os.path.realpath(tempfile.mkdtemp(prefix=f"surgeon_{session_id[:12]}_", dir=base))

    exts = allowed_extensions if allowed_extensions is not None else DEFAULTS["allowed_extensions"]
    session = SandboxSession(
        id=session_id,
        root_path=root,
        allowed_extensions=frozenset(e.lower() for e in exts),
        max_artifact_bytes=max_artifact_bytes or DEFAULTS["max_artifact_bytes"],
    )
    logger.info("[sandbox] created session %s at %s", session.id, root)
    return session


def teardown_session(session):
    """Delete the session directory. Safe to call more than once."""
    if not os.path.isdir(session.root_path):
        logger.debug("[sandbox] session %s already torn down", session.id)
        return False
    shutil.rmtree(session.root_path)
    logger.info("[sandbox] tore down session %s", session.id)
    return True


# ---------------------------------------------------------------------------
# Primitive checks
# ---------------------------------------------------------------------------

def resolve(sandbox_root, user_path):
    """Resolve a user-supplied relative path inside sandbox_root.

    Absolute paths and any ".." component are rejected outright, before the
    realpath containment check, so no traversal spelling reaches the disk.

    Raises:
        PathEscape: If the path is empty, absolute, uses "..", or resolves
            (following symlinks) outside the root.
    """
    if not user_path or not str(user_path).strip():
        raise PathEscape("Path may not be empty")

    user_path = str(user_path)
    if "\x00" in user_path:
        raise PathEscape(f"Path contains a NUL byte: {user_path!r}")
    if os.path.isabs(user_path) or user_path.startswith(("/", "\\")):
        raise PathEscape(f"Absolute paths are not allowed: {user_path}")

    parts = user_path.replace("\\", "/").split("/")
    if ".." in parts:
        raise PathEscape(f"Path escapes sandbox root: {user_path}")

    root = os.path.realpath(sandbox_root)
    resolved = os.path.realpath(os.path.join(root, user_path))
    if resolved != root and not resolved.startswith(root + os.sep):
        raise PathEscape(f"Path escapes sandbox root: {user_path}")
    return resolved


def check_extension(path, allow_list):
    """Raise ExtensionDenied unless the path's extension is in allow_list."""
    if ALLOW_ALL in allow_list:
        return
    _, ext = os.path.splitext(path)
    if ext.lower() not in allow_list:
        raise ExtensionDenied(f"File type {ext or '(none)'} is not permitted: {os.path.basename(path)}")


def read_bounded(path, max_bytes):
    """Read a UTF-8 file, refusing before the read if it exceeds max_bytes."""
    size = os.stat(path).st_size
    if size > max_bytes:
        raise FileTooLarge(f"{os.path.basename(path)} is {size} bytes (limit {max_bytes})")
    with open(path, "r", encoding="utf-8", newline="") as f:
        return f.read()


def write_bounded(path, content, max_bytes):
    """Replace a file's whole content atomically, refusing oversized content."""
    data = content.encode("utf-8")
    if len(data) > max_bytes:
        raise ContentTooLarge(f"Content is {len(data)} bytes (limit {max_bytes})")

    directory = os.path.dirname(path)
    fd, tmp_path = tempfile.mkstemp(prefix=".tmp_", dir=directory)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        # mkstemp files are 0600; keep the replaced file's mode
        if os.path.exists(path):
            shutil.copymode(path, tmp_path)
        else:
            os.chmod(tmp_path, NEW_FILE_MODE)
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise


# ---------------------------------------------------------------------------
# Session-scoped operations (what higher components call)
# ---------------------------------------------------------------------------

def read_file(session, user_path):
    abs_path = resolve(session.root_path, user_path)
    check_extension(abs_path, session.allowed_extensions)
    return read_bounded(abs_path, session.max_artifact_bytes)


def write_file(session, user_path, content):
    abs_path = resolve(session.root_path, user_path)
    check_extension(abs_path, session.allowed_extensions)
    parent = os.path.dirname(abs_path)
    if not os.path.isdir(parent):
        os.makedirs(parent, exist_ok=True)
    write_bounded(abs_path, content, session.max_artifact_bytes)
    logger.debug("[sandbox] wrote %s (%d chars) in session %s", user_path, len(content), session.id)
    return abs_path


def copy_in(session, user_path, content):
    """Seed a file into the session (e.g. the baseline artifact)."""
    return write_file(session, user_path, content)


def make_dir(session, user_path):
    abs_path = resolve(session.root_path, user_path)
    os.makedirs(abs_path, exist_ok=True)
    return abs_path


def list_dir(session, user_path="."):
    """List entries as [{"name": ..., "type": "file"|"directory"}], sorted by name."""
    abs_path = session.root_path if user_path in ("", ".") else resolve(session.root_path, user_path)
    entries = []
    with os.scandir(abs_path) as it:
        for entry in it:
            if entry.name.startswith(".tmp_"):
                continue
            entries.append({
                "name": entry.name,
                "type": "directory" if entry.is_dir() else "file",
            })
    return sorted(entries, key=lambda e: e["name"])
