"""Planner agent: turns the preprocessing analysis into a surgical modification plan."""

from agents.base import StageAgent
from core.errors import ValidationFailure
from core.schemas import PreprocessingResult, SurgicalPlan
from core.state import PipelineStage


class PlannerAgent(StageAgent):
    """Produces an ordered list of typed modifications for the chosen template."""

    name = "planner"
    stage = PipelineStage.PLAN
    shape = SurgicalPlan
    input_type = PreprocessingResult
    prompt_name = "planner"

    def validate_input(self, prior):
        super().validate_input(prior)
        if not prior.selected_template:
            raise ValidationFailure("Invalid input: preprocessingResult with selectedTemplate required")

    def build_prompt(self, prior):
        analysis = prior.business_analysis
        lead = prior.recommended_lead_capture
        lines = [
            self.system_prompt(),
            "---\nPreprocessing Analysis:",
            f"Selected Template: {prior.selected_template}",
            f"Template Fit Score: {prior.template_fit_score:g}%",
            f"Target Audience: {prior.target_audience}",
            f"Industry: {analysis.industry}",
            f"Value Proposition: {analysis.value_proposition}",
            f"Services: {', '.join(analysis.services)}",
            f"Lead Goals: {', '.join(analysis.lead_goals)}",
            f"Modification Signals: {', '.join(prior.modification_signals)}",
        ]
        if lead is not None:
            lines.append(f"Lead Capture: {lead.trigger} - {lead.incentive}")
        lines.append(
            "\n\nCreate a detailed surgical modification plan. "
            "Respond strictly with valid JSON following the specified schema."
        )
        return "\n".join(lines)

    def low_confidence_reason(self, result, thresholds):
        count = len(result.modifications)
        if count == 0:
            return "No modifications specified"
        if count < thresholds["min_plan_modifications"]:
            return f"Only {count} modification(s) specified"
        return None
