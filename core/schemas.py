"""Pydantic shapes for the four stage outputs.

The oracle speaks camelCase JSON; Python code uses snake_case attributes.
All shapes are frozen so a validated StageOutput cannot be mutated on its way
down the chain.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, SerializeAsAny, model_validator
from pydantic.alias_generators import to_camel

TemplateType = Literal["calculator", "quiz", "planner", "form", "diagnostic"]
ModificationOp = Literal["modify", "add", "remove", "replace"]
ModificationType = Literal["text", "calculation", "input", "function", "section", "styling"]


class _Shape(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


# ---------------------------------------------------------------------------
# Modification details: one model per modification type
# ---------------------------------------------------------------------------

class ModificationDetails(_Shape):
    """Keys every modification type may use. Unknown keys are kept as extras."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True, extra="allow",
    )

    from_value: str | None = Field(default=None, alias="from")
    to: str | None = None
    insert_position: Literal["before", "after", "inside"] | None = None
    remove_target: str | None = None
    new_element: Any = None
    replace_with: Any = None


class TextDetails(ModificationDetails):
    pass


class CalculationDetails(ModificationDetails):
    formula: str | None = None
    variables: list[str] = Field(default_factory=list)


class InputDetails(ModificationDetails):
    label: str | None = None
    input_type: str | None = None
    placeholder: str | None = None
    default_value: Any = None


class FunctionDetails(ModificationDetails):
    function_name: str | None = None
    signature: str | None = None


class SectionDetails(ModificationDetails):
    heading: str | None = None


class StylingDetails(ModificationDetails):
    class_names: str | None = None
    color_scheme: dict[str, str] = Field(default_factory=dict)


DETAILS_BY_TYPE: dict[str, type[ModificationDetails]] = {
    "text": TextDetails,
    "calculation": CalculationDetails,
    "input": InputDetails,
    "function": FunctionDetails,
    "section": SectionDetails,
    "styling": StylingDetails,
}


class Modification(_Shape):
    operation: ModificationOp
    type: ModificationType
    target: str
    details: SerializeAsAny[ModificationDetails] = Field(default_factory=ModificationDetails)
    reasoning: str = "AI-generated modification"

    @model_validator(mode="before")
    @classmethod
    def _tag_details(cls, data):
        if not isinstance(data, dict):
            return data
        details = data.get("details")
        details_cls = DETAILS_BY_TYPE.get(data.get("type"), ModificationDetails)
        if details is None:
            details = {}
        if isinstance(details, dict):
            data = {**data, "details": details_cls.model_validate(details)}
        return data


# ---------------------------------------------------------------------------
# Stage outputs
# ---------------------------------------------------------------------------

class BusinessAnalysis(_Shape):
    industry: str = ""
    services: list[str] = Field(default_factory=list)
    value_proposition: str = ""
    lead_goals: list[str] = Field(default_factory=list)


class LeadCaptureRecommendation(_Shape):
    trigger: Literal["before_results", "after_results"] = "after_results"
    incentive: str = ""
    additional_fields: list[str] = Field(default_factory=list)


class PreprocessingResult(_Shape):
    selected_template: TemplateType
    template_fit_score: float = Field(default=0, ge=0, le=100)
    target_audience: str = "General audience"
    modification_signals: list[str] = Field(default_factory=list)
    business_analysis: BusinessAnalysis = Field(default_factory=BusinessAnalysis)
    recommended_lead_capture: LeadCaptureRecommendation | None = None


class DataRequirements(_Shape):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True, extra="allow",
    )

    research_queries: list[str] = Field(default_factory=list)
    expected_data_types: list[str] = Field(default_factory=list)


class SurgicalPlan(_Shape):
    source_template: str = "calculator"
    modifications: list[Modification] = Field(default_factory=list)
    data_requirements: DataRequirements = Field(default_factory=DataRequirements)
    template_enhancements: list[str] = Field(default_factory=list)


class ClientInstructions(_Shape):
    summary: str = "Data research completed"
    data_needed: list[str] = Field(default_factory=list)
    format: str = "JSON"


class ResearchData(_Shape):
    modification_data: dict[str, Any] = Field(default_factory=dict)
    populated_modifications: list[Modification] = Field(default_factory=list)
    client_instructions: ClientInstructions | None = None


class CodeGenerationResult(_Shape):
    success: bool = True
    title: str = ""
    modifications: list[Modification] = Field(default_factory=list)
    enhancements_added: list[str] = Field(default_factory=list)
    validation_errors: list[str] = Field(default_factory=list)
