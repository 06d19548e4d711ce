"""Tests for core.sandbox: containment, extensions, size bounds, lifecycle."""

import os

import pytest

from core import sandbox
from core.errors import ContentTooLarge, ExtensionDenied, FileTooLarge, PathEscape


# ---------------------------------------------------------------------------
# resolve
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("user_path", [
    "../outside.tsx",
    "a/../../outside.tsx",
    "a/b/../../../etc/passwd",
    "..",
    "..\\outside.tsx",
    "/etc/passwd",
    "\\windows\\system32",
])
def test_resolve_rejects_escapes(tmp_path, user_path):
    with pytest.raises(PathEscape):
        sandbox.resolve(str(tmp_path), user_path)


def test_resolve_rejects_empty(tmp_path):
    with pytest.raises(PathEscape, match="empty"):
        sandbox.resolve(str(tmp_path), "  ")


def test_resolve_rejects_nul_byte(tmp_path):
    with pytest.raises(PathEscape, match="NUL"):
        sandbox.resolve(str(tmp_path), "page.tsx\x00.txt")


def test_resolve_accepts_nested_paths(tmp_path):
    resolved = sandbox.resolve(str(tmp_path), "src/app/page.tsx")
    assert resolved == os.path.join(os.path.realpath(str(tmp_path)), "src", "app", "page.tsx")


def test_resolve_rejects_symlink_out_of_root(tmp_path):
    root = tmp_path / "root"
    outside = tmp_path / "outside"
    root.mkdir()
    outside.mkdir()
    os.symlink(str(outside), str(root / "link"))
    with pytest.raises(PathEscape):
        sandbox.resolve(str(root), "link/file.tsx")


def test_resolve_rejects_sibling_with_common_prefix(tmp_path):
    root = tmp_path / "box"
    root.mkdir()
    (tmp_path / "box2").mkdir()
    os.symlink(str(tmp_path / "box2"), str(root / "jump"))
    with pytest.raises(PathEscape):
        sandbox.resolve(str(root), "jump")


# ---------------------------------------------------------------------------
# extensions and size bounds
# ---------------------------------------------------------------------------

def test_check_extension_allows_listed():
    sandbox.check_extension("a/b.TSX", frozenset({".tsx"}))


def test_check_extension_denies_unlisted():
    with pytest.raises(ExtensionDenied, match=".exe"):
        sandbox.check_extension("tool.exe", frozenset({".tsx"}))


def test_check_extension_denies_missing_extension():
    with pytest.raises(ExtensionDenied):
        sandbox.check_extension("Makefile", frozenset({".tsx"}))


def test_check_extension_wildcard():
    sandbox.check_extension("anything.bin", frozenset({"*"}))


def test_read_bounded_refuses_large_file(tmp_path):
    path = tmp_path / "big.txt"
    path.write_text("x" * 100)
    with pytest.raises(FileTooLarge):
        sandbox.read_bounded(str(path), 99)


def test_read_bounded_preserves_crlf(tmp_path):
    path = tmp_path / "crlf.txt"
    path.write_bytes(b"a\r\nb\r\n")
    assert sandbox.read_bounded(str(path), 100) == "a\r\nb\r\n"


def test_write_bounded_refuses_large_content(tmp_path):
    path = tmp_path / "out.txt"
    path.write_text("original")
    with pytest.raises(ContentTooLarge):
        sandbox.write_bounded(str(path), "y" * 20, 10)
    assert path.read_text() == "original"


def test_write_bounded_counts_bytes_not_chars(tmp_path):
    with pytest.raises(ContentTooLarge):
        sandbox.write_bounded(str(tmp_path / "u.txt"), "é" * 6, 10)


def test_write_bounded_leaves_no_temp_files(tmp_path):
    path = tmp_path / "out.txt"
    sandbox.write_bounded(str(path), "hello", 100)
    assert path.read_text() == "hello"
    assert os.listdir(str(tmp_path)) == ["out.txt"]


def test_write_bounded_keeps_existing_mode(tmp_path):
    path = tmp_path / "out.txt"
    path.write_text("old")
    os.chmod(str(path), 0o644)
    sandbox.write_bounded(str(path), "new", 100)
    assert os.stat(str(path)).st_mode & 0o777 == 0o644


def test_write_bounded_new_file_is_not_owner_only(tmp_path):
    path = tmp_path / "fresh.txt"
    sandbox.write_bounded(str(path), "x", 100)
    assert os.stat(str(path)).st_mode & 0o777 == sandbox.NEW_FILE_MODE


# ---------------------------------------------------------------------------
# sessions
# ---------------------------------------------------------------------------

def test_sessions_are_isolated(tmp_path):
    a = sandbox.create_session(base_dir=str(tmp_path))
    b = sandbox.create_session(base_dir=str(tmp_path))
    assert a.id != b.id
    assert a.root_path != b.root_path
    sandbox.write_file(a, "f.txt", "from a")
    with pytest.raises(FileNotFoundError):
        sandbox.read_file(b, "f.txt")


def test_teardown_is_idempotent(tmp_path):
    s = sandbox.create_session(base_dir=str(tmp_path))
    sandbox.write_file(s, "nested/dir/file.tsx", "x")
    assert sandbox.teardown_session(s) is True
    assert not os.path.exists(s.root_path)
    assert sandbox.teardown_session(s) is False


def test_session_file_operations(session):
    sandbox.copy_in(session, "calculator.tsx", "const a = 1;\n")
    sandbox.make_dir(session, "assets")
    assert sandbox.read_file(session, "calculator.tsx") == "const a = 1;\n"
    assert sandbox.list_dir(session) == [
        {"name": "assets", "type": "directory"},
        {"name": "calculator.tsx", "type": "file"},
    ]


def test_session_write_respects_extension_policy(session):
    with pytest.raises(ExtensionDenied):
        sandbox.write_file(session, "payload.sh", "echo hi")
    assert sandbox.list_dir(session) == []


def test_session_write_rejects_escape_before_touching_disk(session, tmp_path):
    with pytest.raises(PathEscape):
        sandbox.write_file(session, "../escaped.tsx", "x")
    assert not os.path.exists(os.path.join(os.path.dirname(session.root_path), "escaped.tsx"))


def test_session_size_bound(tmp_path):
    s = sandbox.create_session(base_dir=str(tmp_path), max_artifact_bytes=8)
    with pytest.raises(ContentTooLarge):
        sandbox.write_file(s, "a.txt", "123456789")
    sandbox.teardown_session(s)


def test_file_hash_is_sha1_hex():
    assert sandbox.file_hash("") == "da39a3ee5e6b4b0d3255bfef95601890afd80709"
