"""Error taxonomy shared by every pipeline component.

Each error carries a ``kind`` string that ends up in the failure payload, so
a caller can tell a provider outage from a structural problem without parsing
messages.
"""

from __future__ import annotations


class PipelineError(Exception):
    kind = "PipelineError"


# --- Oracle -----------------------------------------------------------------

class OracleError(PipelineError):
    kind = "OracleError"


class TransientOverload(OracleError):
    """Rate limit or capacity signal from a provider. Retryable."""

    kind = "TransientOverload"


class OracleFatal(OracleError):
    """Malformed request, authentication, or any other non-overload failure."""

    kind = "OracleFatal"


class ValidationFailure(OracleFatal):
    """Output (or stage input) did not match the expected shape."""

    kind = "ValidationFailure"


# --- Sandbox ----------------------------------------------------------------

class SandboxViolation(PipelineError, ValueError):
    kind = "SandboxViolation"


class PathEscape(SandboxViolation):
    kind = "PathEscape"


class ExtensionDenied(SandboxViolation):
    kind = "ExtensionDenied"


class FileTooLarge(SandboxViolation):
    kind = "FileTooLarge"


class ContentTooLarge(SandboxViolation):
    kind = "ContentTooLarge"


# --- Diff mutation ----------------------------------------------------------

class ConcurrentModification(PipelineError):
    """File changed between read and write. Re-read and retry the whole edit."""

    kind = "ConcurrentModification"

    def __init__(self, path, expected_hash, actual_hash):
        super().__init__(
            f"File hash mismatch for {path}: expected {expected_hash}, found {actual_hash}"
        )
        self.path = path
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash


class MalformedPatch(PipelineError):
    kind = "MalformedPatch"

    def __init__(self, message, raw_output=""):
        super().__init__(message)
        self.raw_output = raw_output


class PatchApplicationFailed(PipelineError):
    kind = "PatchApplicationFailed"

    def __init__(self, message, original_content="", diff=""):
        super().__init__(message)
        self.original_content = original_content
        self.diff = diff


# --- Orchestration ----------------------------------------------------------

class StageFailure(PipelineError):
    """Both the primary and the fallback call of a stage failed."""

    def __init__(self, stage, cause):
        super().__init__(f"Stage '{stage}' failed: {cause}")
        self.stage = stage
        self.cause = cause

    @property
    def kind(self):
        return getattr(self.cause, "kind", type(self.cause).__name__)


class PipelineCancelled(PipelineError):
    kind = "Cancelled"


def error_kind(exc: BaseException) -> str:
    """Return the taxonomy name for any exception."""
    return getattr(exc, "kind", None) or type(exc).__name__
