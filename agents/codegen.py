"""Code generation agent: final, concrete edit list for the baseline artifact."""

import json

from agents.base import StageAgent, as_json
from core.schemas import CodeGenerationResult, ResearchData
from core.state import PipelineStage


class CodeGenerationAgent(StageAgent):
    """Resolves researched modifications into edits the diff engine can apply one by one."""

    name = "codegen"
    stage = PipelineStage.CODEGEN
    shape = CodeGenerationResult
    input_type = ResearchData
    prompt_name = "codegen"

    def build_prompt(self, prior):
        instructions = prior.client_instructions
        lines = [
            self.system_prompt(),
            "---\nResearch Data:",
            json.dumps(prior.modification_data, indent=2, default=str),
            f"Populated Modifications ({len(prior.populated_modifications)}):",
            "\n".join(as_json(m) for m in prior.populated_modifications) or "(none)",
        ]
        if instructions is not None:
            lines.append(f"Client Instructions: {instructions.summary}")
        lines.append(
            "\n\nReturn the final list of modifications with every value filled in, plus a "
            "title for the finished tool. Respond strictly with valid JSON following the "
            "specified schema."
        )
        return "\n".join(lines)

    def low_confidence_reason(self, result, thresholds):
        if not result.success:
            errors = "; ".join(result.validation_errors) or "no details"
            return f"Code generation reported failure: {errors}"
        if len(result.modifications) < thresholds["min_codegen_edits"]:
            return f"Only {len(result.modifications)} edit(s) produced"
        return None
