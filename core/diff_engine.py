"""Diff mutation engine: one natural-language edit, applied as a verified patch.

Per call: READ -> HASH_CHECK -> (GENERATE -> PARSE -> APPLY)* -> WRITE.
The bracketed cycle runs under run_with_backoff, so a malformed diff, a diff
that will not apply, or a provider overload each cost one attempt. The file
is either fully patched or left exactly as it was.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import re

from config.models import PATCHER
from core import sandbox
from core.backoff import FATAL, RETRYABLE, run_with_backoff
from core.errors import (
    ConcurrentModification,
    MalformedPatch,
    PatchApplicationFailed,
    TransientOverload,
)
from core.fs_tools import number_lines
from core.patching import PatchContextMismatch, PatchParseError, apply_patch
from core.state import PatchAttempt, PatchResult
from utils.llm import strip_fences

logger = logging.getLogger(__name__)

_JSON_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)

DIFF_PROMPT = """You are a code modification assistant. Generate a unified diff that makes exactly the requested change.

Return ONLY a JSON object: {{"diff": "<unified diff>"}}

File: {filename} ({line_count} lines)
Request: {instruction}

Use unified diff format. Line numbers in the listing below are for reference only
and must NOT appear in the diff:
--- a/{filename}
+++ b/{filename}
@@ -start,count +start,count @@
 unchanged line
-removed line
+added line

Include 2-3 lines of unchanged context around each change.
{feedback}
File content (line-numbered):
{numbered}
"""


def classify_patch_error(error):
    """Oracle instability and overload are worth another attempt; nothing else is."""
    if isinstance(error, (MalformedPatch, PatchApplicationFailed, TransientOverload)):
        return RETRYABLE
    return FATAL


def extract_diff(raw):
    """Pull the diff string out of the oracle's ``{"diff": ...}`` reply.

    Raises:
        MalformedPatch: Output is not JSON, or the diff field is missing or empty.
    """
    text = strip_fences(raw or "")
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        # Models sometimes wrap the object in prose
        match = _JSON_OBJECT_RE.search(text)
        if not match:
            raise MalformedPatch("Oracle output is not JSON", raw_output=raw) from None
        try:
            data = json.loads(match.group(0))
        except json.JSONDecodeError:
            raise MalformedPatch("Oracle output is not JSON", raw_output=raw) from None

    if not isinstance(data, dict):
        raise MalformedPatch("Oracle output is not a JSON object", raw_output=raw)
    diff = data.get("diff")
    if not isinstance(diff, str) or not diff.strip():
        raise MalformedPatch("Oracle output has no diff", raw_output=raw)
    return diff


def build_prompt(attempt: PatchAttempt, filename, feedback=""):
    content = attempt.original_content
    return DIFF_PROMPT.format(
        filename=filename,
        line_count=len(content.split("\n")),
        instruction=attempt.edit_instruction,
        feedback=f"\nYour previous diff was rejected: {feedback}\n" if feedback else "",
        numbered=number_lines(content),
    )


class DiffMutationEngine:
    """Applies single edit instructions to sandboxed files through oracle-written diffs."""

    def __init__(self, oracle, config=PATCHER, max_attempts=3, fuzz_factor=10,
                 base_delay=1.0, sleep=asyncio.sleep):
        self.oracle = oracle
        self.config = config
        self.max_attempts = max_attempts
        self.fuzz_factor = fuzz_factor
        self.base_delay = base_delay
        self.sleep = sleep

    async def apply_edit(self, session, path, instruction, expected_hash=None,
                         tools=None, max_steps=1, cancel=None) -> PatchResult:
        """Apply one edit instruction to ``path`` inside ``session``.

        Args:
            session: SandboxSession the file lives in.
            path: Path relative to the session root.
            instruction: One semantic change, in natural language.
            expected_hash: Optional sha1 the file must still have.
            tools: Optional oracle toolset (see core.fs_tools.build_toolset).
            max_steps: Tool-use rounds allowed per oracle call.
            cancel: Optional asyncio.Event observed at every suspension point.

        Returns:
            PatchResult describing the applied diff.

        Raises:
            ConcurrentModification: expected_hash is stale, or the file changed
                while the diff was being generated.
            MalformedPatch / PatchApplicationFailed: attempts exhausted.
            SandboxViolation: path, extension or size policy violated.
        """
        # READ
        original = sandbox.read_file(session, path)
        current_hash = sandbox.file_hash(original)

        # HASH_CHECK
        if expected_hash and expected_hash != current_hash:
            raise ConcurrentModification(path, expected_hash, current_hash)

        attempt = PatchAttempt(
            original_content=original,
            edit_instruction=instruction,
            expected_hash=expected_hash,
            fuzz_factor=self.fuzz_factor,
        )
        filename = os.path.basename(path)
        calls = 0
        feedback = ""

        async def cycle():
            nonlocal calls, feedback
            calls += 1
            prompt = build_prompt(attempt, filename, feedback)
            logger.debug("[diff] %s attempt %d: prompt %d chars", path, calls, len(prompt))

            # GENERATE
            raw = await self.oracle.generate_freeform(prompt, self.config, tools, max_steps)
            logger.debug("[diff] %s attempt %d: oracle returned %d chars", path, calls, len(raw or ""))

            # PARSE
            try:
                diff = extract_diff(raw)
            except MalformedPatch as exc:
                feedback = f"{exc}. Reply with a single JSON object."
                raise

            # APPLY
            try:
                patched = apply_patch(attempt.original_content, diff, attempt.fuzz_factor)
            except (PatchParseError, PatchContextMismatch) as exc:
                feedback = str(exc)
                raise PatchApplicationFailed(
                    f"Patch does not apply to {path}: {exc}",
                    original_content=attempt.original_content,
                    diff=diff,
                ) from exc
            if patched == attempt.original_content:
                feedback = "the diff made no change"
                raise PatchApplicationFailed(
                    f"Patch for {path} made no change",
                    original_content=attempt.original_content,
                    diff=diff,
                )
            return diff, patched

        diff, patched = await run_with_backoff(
            cycle,
            self.max_attempts,
            classify_patch_error,
            base_delay=self.base_delay,
            sleep=self.sleep,
            cancel=cancel,
            label=f"diff {path}",
        )

        # WRITE, after re-verifying nothing changed underneath us
        on_disk_hash = sandbox.file_hash(sandbox.read_file(session, path))
        if on_disk_hash != current_hash:
            raise ConcurrentModification(path, current_hash, on_disk_hash)
        sandbox.write_file(session, path, patched)

        new_hash = sandbox.file_hash(patched)
        logger.info("[diff] applied edit to %s in %d attempt(s): %s", path, calls, instruction[:80])
        return PatchResult(
            path=path,
            instruction=instruction,
            diff=diff,
            previous_hash=current_hash,
            new_hash=new_hash,
            attempts=calls,
        )
