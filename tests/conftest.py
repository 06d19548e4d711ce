"""Shared fakes: a scripted oracle, a recording sleep, and canned stage payloads."""

import copy

import pytest

from core import sandbox


class FakeOracle:
    """Oracle that replays scripted responses and records every call.

    ``structured`` maps a shape name to a list of responses; ``freeform`` is a
    list of responses. A response that is an exception instance is raised.
    """

    def __init__(self, structured=None, freeform=None):
        self.structured = {k: list(v) for k, v in (structured or {}).items()}
        self.freeform = list(freeform or [])
        self.calls = []

    async def generate_structured(self, prompt, shape, config):
        self.calls.append(("structured", shape.__name__, config.name))
        item = self.structured[shape.__name__].pop(0)
        if isinstance(item, BaseException):
            raise item
        return shape.model_validate(item)

    async def generate_freeform(self, prompt, config, tools=None, max_steps=1):
        self.calls.append(("freeform", prompt, config.name))
        item = self.freeform.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    def count(self, kind, name=None):
        return sum(1 for c in self.calls if c[0] == kind and (name is None or name in c))


class SleepRecorder:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


PREPROCESS = {
    "selectedTemplate": "calculator",
    "templateFitScore": 92,
    "targetAudience": "Homeowners considering solar",
    "modificationSignals": ["solar savings", "payback period"],
    "businessAnalysis": {
        "industry": "energy",
        "services": ["solar installation"],
        "valueProposition": "Lower energy bills",
        "leadGoals": ["book site survey"],
    },
    "recommendedLeadCapture": {
        "trigger": "after_results",
        "incentive": "Free savings report",
        "additionalFields": ["zip code"],
    },
}

PLAN = {
    "sourceTemplate": "calculator",
    "modifications": [
        {
            "operation": "modify",
            "type": "text",
            "target": "CardTitle",
            "details": {"from": "Investment ROI Calculator", "to": "Solar Savings Calculator"},
            "reasoning": "Match the business",
        },
    ],
    "dataRequirements": {"researchQueries": ["average solar install cost"]},
}

RESEARCH = {
    "modificationData": {"averageCost": 15000},
    "populatedModifications": PLAN["modifications"],
}

CODEGEN = {
    "success": True,
    "title": "Solar Savings Calculator",
    "modifications": PLAN["modifications"],
}

TITLE_DIFF = (
    "--- a/calculator.tsx\n"
    "+++ b/calculator.tsx\n"
    "@@ -36,1 +36,1 @@\n"
    '-            <CardTitle className="text-2xl font-bold">Investment ROI Calculator</CardTitle>\n'
    '+            <CardTitle className="text-2xl font-bold">Solar Savings Calculator</CardTitle>\n'
)


@pytest.fixture
def payloads():
    """Deep copies of valid primary outputs for each stage, keyed by shape name."""
    return copy.deepcopy({
        "PreprocessingResult": PREPROCESS,
        "SurgicalPlan": PLAN,
        "ResearchData": RESEARCH,
        "CodeGenerationResult": CODEGEN,
    })


@pytest.fixture
def title_diff():
    return TITLE_DIFF


@pytest.fixture
def sleeps():
    return SleepRecorder()


@pytest.fixture
def make_oracle():
    return FakeOracle


@pytest.fixture
def session(tmp_path):
    s = sandbox.create_session(base_dir=str(tmp_path / "sandboxes"))
    yield s
    sandbox.teardown_session(s)
