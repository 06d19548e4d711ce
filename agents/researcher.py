"""Research agent: fills a plan's modifications with concrete, domain-specific data."""

from agents.base import StageAgent, as_json
from core.errors import ValidationFailure
from core.schemas import ClientInstructions, ResearchData, SurgicalPlan
from core.state import PipelineStage


class ResearchAgent(StageAgent):
    name = "researcher"
    stage = PipelineStage.RESEARCH
    shape = ResearchData
    input_type = SurgicalPlan
    prompt_name = "researcher"

    def validate_input(self, prior):
        super().validate_input(prior)
        if not prior.source_template:
            raise ValidationFailure("Invalid input: surgicalPlan with sourceTemplate required")

    def build_prompt(self, prior):
        requirements = prior.data_requirements
        lines = [
            self.system_prompt(),
            "---\nSurgical Plan:",
            f"Source Template: {prior.source_template}",
            f"Modifications ({len(prior.modifications)}):",
            "\n".join(as_json(m) for m in prior.modifications) or "(none)",
            f"Research Queries: {', '.join(requirements.research_queries) or '(none)'}",
            f"Expected Data Types: {', '.join(requirements.expected_data_types) or '(none)'}",
            "\n\nResearch the data each modification needs and return the populated "
            "modifications. Respond strictly with valid JSON following the specified schema.",
        ]
        return "\n".join(lines)

    def low_confidence_reason(self, result, thresholds):
        keys = len(result.modification_data)
        if keys < thresholds["min_research_keys"]:
            return f"Research returned {keys} data key(s)"
        return None

    def transform(self, result):
        if result.client_instructions is not None:
            return result
        return result.model_copy(update={"client_instructions": ClientInstructions()})
