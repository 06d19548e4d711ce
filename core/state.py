"""Pipeline state models shared across all stages."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any


class PipelineStage(str, enum.Enum):
    INIT = "init"
    PREPROCESS = "preprocess"
    PLAN = "plan"
    RESEARCH = "research"
    CODEGEN = "codegen"
    FILE_PATCH = "file_patch"
    ASSEMBLE = "assemble"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class PipelineRequest:
    user_prompt: str
    business_type: str | None = None
    industry: str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> PipelineRequest:
        """Build from an inbound JSON body (camelCase or snake_case keys)."""
        return cls(
            user_prompt=(data.get("userPrompt") or data.get("user_prompt") or "").strip(),
            business_type=data.get("businessType") or data.get("business_type"),
            industry=data.get("industry"),
        )


@dataclass(frozen=True)
class SandboxSession:
    id: str
    root_path: str                      # absolute, realpath-normalised
    allowed_extensions: frozenset[str]
    max_artifact_bytes: int


@dataclass
class PatchAttempt:
    original_content: str
    edit_instruction: str
    expected_hash: str | None = None
    fuzz_factor: int = 10


@dataclass
class RetryState:
    attempt: int = 0
    max_attempts: int = 1
    last_error: BaseException | None = None


@dataclass(frozen=True)
class StageOutput:
    stage: PipelineStage
    value: Any                          # one of the four pydantic shapes
    used_fallback: bool = False
    fallback_reason: str = ""

    def to_dict(self) -> dict:
        return {
            "stage": self.stage.value,
            "used_fallback": self.used_fallback,
            "fallback_reason": self.fallback_reason,
            "value": self.value.model_dump(by_alias=True),
        }


@dataclass(frozen=True)
class PatchResult:
    path: str
    instruction: str
    diff: str
    previous_hash: str
    new_hash: str
    attempts: int


@dataclass(frozen=True)
class FinalArtifact:
    id: str
    title: str
    template_type: str
    filename: str
    source_text: str
    stages: dict[str, StageOutput]
    patches: list[PatchResult]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "type": self.template_type,
            "filename": self.filename,
            "sourceText": self.source_text,
            "patches": [
                {"instruction": p.instruction, "diff": p.diff, "attempts": p.attempts}
                for p in self.patches
            ],
        }


@dataclass
class RunState:
    request: PipelineRequest
    status: PipelineStage = PipelineStage.INIT
    session: SandboxSession | None = None
    artifact_path: str = ""
    template_type: str = ""
    title: str = ""
    outputs: dict[str, StageOutput] = field(default_factory=dict)
    patches: list[PatchResult] = field(default_factory=list)
    failed_stage: PipelineStage | None = None
    torn_down: bool = False
