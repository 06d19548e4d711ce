"""Tests for core.schemas and core.state."""

import pytest
from pydantic import ValidationError

from core.errors import ConcurrentModification, OracleFatal, StageFailure, error_kind
from core.schemas import (
    CalculationDetails,
    InputDetails,
    Modification,
    ModificationDetails,
    PreprocessingResult,
    SurgicalPlan,
    TextDetails,
)
from core.state import FinalArtifact, PatchResult, PipelineRequest, PipelineStage, StageOutput


def test_details_are_tagged_by_modification_type():
    text = Modification.model_validate({
        "operation": "modify", "type": "text", "target": "h1",
        "details": {"from": "Old", "to": "New"},
    })
    calc = Modification.model_validate({
        "operation": "modify", "type": "calculation", "target": "roi",
        "details": {"formula": "a / b", "variables": ["a", "b"]},
    })
    assert isinstance(text.details, TextDetails)
    assert text.details.from_value == "Old"
    assert isinstance(calc.details, CalculationDetails)
    assert calc.details.variables == ["a", "b"]


def test_unknown_detail_keys_are_kept_and_serialized():
    mod = Modification.model_validate({
        "operation": "add", "type": "input", "target": "form",
        "details": {"label": "Roof size", "options": ["small", "large"]},
    })
    assert isinstance(mod.details, InputDetails)
    dumped = mod.model_dump(by_alias=True, exclude_none=True)
    assert dumped["details"] == {"label": "Roof size", "options": ["small", "large"]}


def test_missing_details_and_reasoning_get_defaults():
    mod = Modification(operation="remove", type="section", target="footer")
    assert isinstance(mod.details, ModificationDetails)
    assert mod.reasoning == "AI-generated modification"


def test_invalid_operation_rejected():
    with pytest.raises(ValidationError):
        Modification(operation="rename", type="text", target="x")


def test_fit_score_is_bounded():
    with pytest.raises(ValidationError):
        PreprocessingResult(selected_template="calculator", template_fit_score=140)


def test_stage_values_are_frozen():
    plan = SurgicalPlan()
    with pytest.raises(ValidationError):
        plan.source_template = "quiz"


def test_shapes_accept_snake_or_camel_keys():
    a = PreprocessingResult.model_validate({"selectedTemplate": "form", "templateFitScore": 90})
    b = PreprocessingResult.model_validate({"selected_template": "form", "template_fit_score": 90})
    assert a == b


# ---------------------------------------------------------------------------
# core.state
# ---------------------------------------------------------------------------

def test_request_from_camel_and_snake_dicts():
    a = PipelineRequest.from_dict({"userPrompt": "  build a quiz  ", "businessType": "gym"})
    b = PipelineRequest.from_dict({"user_prompt": "build a quiz", "business_type": "gym"})
    assert a == b
    assert a.industry is None


def test_stage_output_to_dict_uses_camel_case():
    output = StageOutput(
        stage=PipelineStage.PLAN,
        value=SurgicalPlan(source_template="quiz"),
        used_fallback=True,
        fallback_reason="No modifications specified",
    )
    d = output.to_dict()
    assert d["stage"] == "plan"
    assert d["value"]["sourceTemplate"] == "quiz"
    assert d["used_fallback"] is True


def test_final_artifact_to_dict():
    artifact = FinalArtifact(
        id="abc", title="T", template_type="quiz", filename="quiz.tsx", source_text="src",
        stages={}, patches=[PatchResult("quiz.tsx", "do it", "diff", "h0", "h1", 2)],
    )
    assert artifact.to_dict() == {
        "id": "abc", "title": "T", "type": "quiz", "filename": "quiz.tsx", "sourceText": "src",
        "patches": [{"instruction": "do it", "diff": "diff", "attempts": 2}],
    }


# ---------------------------------------------------------------------------
# core.errors
# ---------------------------------------------------------------------------

def test_stage_failure_reports_cause_kind():
    failure = StageFailure("plan", OracleFatal("401"))
    assert failure.kind == "OracleFatal"
    assert error_kind(failure) == "OracleFatal"


def test_error_kind_for_foreign_exceptions():
    assert error_kind(KeyError("x")) == "KeyError"


def test_concurrent_modification_message():
    exc = ConcurrentModification("a.tsx", "aaa", "bbb")
    assert "expected aaa, found bbb" in str(exc)
    assert exc.kind == "ConcurrentModification"
