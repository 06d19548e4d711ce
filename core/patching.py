"""Unified-diff parsing and fuzzy application against in-memory text.

Hunk header line counts are advisory: oracle-written diffs routinely get them
wrong, so only the hunk bodies are trusted. The old-start number is used as
the place to start searching.

Matching rules for one hunk:
  * removed ("-") lines must match the file, ignoring surrounding whitespace;
  * context (" ") lines may mismatch, up to ``fuzz_factor`` of them;
  * at least one line of the hunk must match exactly or loosely, so a hunk
    never lands on unrelated text.
Context lines are copied from the file, not from the diff, so drifted context
stays byte-for-byte as it was.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

_HUNK_RE = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@")


class PatchParseError(ValueError):
    """The text is not a usable unified diff."""


class PatchContextMismatch(ValueError):
    """A hunk could not be located in the original, even with fuzz."""


@dataclass
class Hunk:
    old_start: int
    new_start: int
    lines: list[tuple[str, str]] = field(default_factory=list)   # (op, text), op in " -+"

    @property
    def old_lines(self):
        return [text for op, text in self.lines if op in " -"]

    @property
    def new_lines(self):
        return [text for op, text in self.lines if op in " +"]


def parse_unified_diff(diff_text):
    """Parse the hunks out of a single-file unified diff.

    File headers (---/+++/diff/index lines) are skipped. A hunk runs until the
    next hunk or file header. Blank and unprefixed lines inside a hunk are
    read as context lines, since models often drop the leading space; only
    unprefixed lines after a hunk's last change are dropped as trailing prose.

    Raises:
        PatchParseError: If no hunk is found or a hunk has no body.
    """
    hunks = []
    current = None

    for raw in diff_text.replace("\r\n", "\n").split("\n"):
        m = _HUNK_RE.match(raw)
        if m:
            current = Hunk(old_start=int(m.group(1)), new_start=int(m.group(3)))
            hunks.append(current)
            continue

        if current is None:
            continue

        if raw.startswith(("--- ", "+++ ")) and _looks_like_header(raw):
            current = None
            continue
        if raw.startswith("\\"):
            # "\ No newline at end of file"
            continue

        if raw == "":
            current.lines.append(("~", ""))
        elif raw[0] in " -+":
            current.lines.append((raw[0], raw[1:]))
        else:
            current.lines.append(("~", raw))

    for hunk in hunks:
        # Unprefixed tail: the diff's final newline or prose after the body
        while hunk.lines and (hunk.lines[-1][0] == "~" or hunk.lines[-1] == (" ", "")):
            hunk.lines.pop()
        hunk.lines = [(" " if op == "~" else op, text) for op, text in hunk.lines]

    hunks = [h for h in hunks if h.lines]
    if not hunks:
        raise PatchParseError("Diff contains no hunks")
    return hunks


def _looks_like_header(line):
    rest = line[4:].strip()
    return rest.startswith(("a/", "b/", "/dev/null")) or "\t" in rest


def _loose(a, b):
    return a == b or a.strip() == b.strip()


def _score(file_lines, pos, hunk_lines, fuzz_factor):
    """Return the number of context mismatches at pos, or None if unusable."""
    if pos < 0 or pos + len(hunk_lines) > len(file_lines):
        return None
    mismatches = 0
    anchored = False
    for offset, (op, text) in enumerate(hunk_lines):
        actual = file_lines[pos + offset]
        if _loose(actual, text):
            anchored = True
            continue
        if op == "-":
            return None
        mismatches += 1
        if mismatches > fuzz_factor:
            return None
    return mismatches if anchored else None


def _locate(file_lines, hunk, start_min, fuzz_factor):
    """Find the best position for hunk at or after start_min."""
    old = [(op, text) for op, text in hunk.lines if op in " -"]
    expected = max(hunk.old_start - 1, start_min)
    last = len(file_lines) - len(old)
    if last < start_min:
        return None

    # Exact matches win outright, nearest to the expected line first
    best = None
    for distance in range(0, max(expected - start_min, last - expected) + 1):
        for pos in (expected - distance, expected + distance) if distance else (expected,):
            if pos < start_min or pos > last:
                continue
            score = _score(file_lines, pos, old, fuzz_factor)
            if score is None:
                continue
            if score == 0:
                return pos
            if best is None or score < best[0]:
                best = (score, pos)
    return best[1] if best else None


def apply_patch(original, diff_text, fuzz_factor=0):
    """Apply a unified diff to ``original`` and return the patched text.

    The original's line ending style and trailing-newline state are kept.

    Raises:
        PatchParseError: If the diff has no usable hunks.
        PatchContextMismatch: If any hunk cannot be placed.
    """
    hunks = parse_unified_diff(diff_text)

    eol = "\r\n" if "\r\n" in original else "\n"
    trailing = original.endswith(eol)
    body = original[: -len(eol)] if trailing else original
    file_lines = body.split(eol) if body else []

    out = []
    cursor = 0
    for index, hunk in enumerate(hunks, 1):
        hunk_lines = [(op, text.rstrip("\r")) for op, text in hunk.lines]
        hunk = Hunk(hunk.old_start, hunk.new_start, hunk_lines)

        if not hunk.old_lines:
            # Pure insertion: "@@ -N,0 +M,k @@" inserts after line N
            pos = min(max(hunk.old_start, cursor), len(file_lines))
        else:
            pos = _locate(file_lines, hunk, cursor, fuzz_factor)
            if pos is None:
                raise PatchContextMismatch(
                    f"Hunk {index} (near line {hunk.old_start}) does not match the file"
                )

        out.extend(file_lines[cursor:pos])
        file_pos = pos
        for op, text in hunk.lines:
            if op == " ":
                out.append(file_lines[file_pos])
                file_pos += 1
            elif op == "-":
                file_pos += 1
            else:
                out.append(text)
        cursor = file_pos

    out.extend(file_lines[cursor:])
    patched = eol.join(out)
    if trailing and out:
        patched += eol
    return patched
