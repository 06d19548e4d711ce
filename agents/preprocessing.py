"""Preprocessing agent: maps a business description onto a template type."""

from agents.base import StageAgent
from core.errors import ValidationFailure
from core.schemas import LeadCaptureRecommendation, PreprocessingResult
from core.state import PipelineRequest, PipelineStage


class PreprocessingAgent(StageAgent):
    """Chooses the baseline template and extracts modification signals."""

    name = "preprocessing"
    stage = PipelineStage.PREPROCESS
    shape = PreprocessingResult
    input_type = PipelineRequest
    prompt_name = "preprocessing"

    def validate_input(self, prior):
        super().validate_input(prior)
        if not prior.user_prompt.strip():
            raise ValidationFailure("Invalid input: userPrompt is required")

    def build_prompt(self, prior):
        lines = [
            self.system_prompt(),
            "---",
            f"User Prompt: {prior.user_prompt}",
        ]
        if prior.business_type:
            lines.append(f"Business Type: {prior.business_type}")
        if prior.industry:
            lines.append(f"Industry: {prior.industry}")
        lines.append("\nRespond strictly with valid JSON following the specified schema.")
        return "\n".join(lines)

    def low_confidence_reason(self, result, thresholds):
        if result.template_fit_score < thresholds["min_fit_score"]:
            return f"Low confidence score: {result.template_fit_score:g}"
        return None

    def transform(self, result):
        if result.recommended_lead_capture is not None:
            return result
        return result.model_copy(update={
            "recommended_lead_capture": LeadCaptureRecommendation(trigger="after_results"),
        })
