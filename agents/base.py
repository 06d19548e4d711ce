"""Abstract base class for all pipeline stage agents."""

import json
import os
from abc import ABC, abstractmethod

from core.errors import ValidationFailure

_PROMPTS_DIR = os.path.join(os.path.dirname(__file__), "prompts")


def load_prompt(name):
    """Read agents/prompts/<name>.txt."""
    with open(os.path.join(_PROMPTS_DIR, f"{name}.txt"), encoding="utf-8") as f:
        return f.read()


def as_json(model):
    """Render a pydantic value as indented camelCase JSON for a prompt."""
    return json.dumps(model.model_dump(by_alias=True, exclude_none=True), indent=2)


class StageAgent(ABC):
    """Base class every stage agent must extend.

    An agent is configuration for the StageRunner: what it expects as input,
    how its prompt is built, what shape the oracle must return, and when a
    result is not good enough to pass downstream.
    """

    name = "base"
    stage = None        # PipelineStage
    shape = None        # pydantic model class
    input_type = None   # expected type of the prior output
    prompt_name = ""

    def validate_input(self, prior):
        """Raise ValidationFailure unless prior carries what the prompt needs."""
        if self.input_type is not None and not isinstance(prior, self.input_type):
            raise ValidationFailure(
                f"Invalid input for {self.name}: expected {self.input_type.__name__}, "
                f"got {type(prior).__name__}"
            )

    def system_prompt(self):
        return load_prompt(self.prompt_name)

    @abstractmethod
    def build_prompt(self, prior):
        """Return the full prompt text for this stage."""

    @abstractmethod
    def low_confidence_reason(self, result, thresholds):
        """Return None if result can be trusted, else a short reason."""

    def transform(self, result):
        """Post-process a validated result. Default: unchanged."""
        return result
