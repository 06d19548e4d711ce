"""Main pipeline orchestrator: a fixed linear state machine with guaranteed sandbox teardown."""

import asyncio
import functools
import logging

from agents.codegen import CodeGenerationAgent
from agents.patch_composer import PatchComposer
from agents.planner import PlannerAgent
from agents.preprocessing import PreprocessingAgent
from agents.researcher import ResearchAgent
from config.defaults import load_settings
from config.models import PATCHER
from core import sandbox
from core.backoff import raise_if_cancelled
from core.diff_engine import DiffMutationEngine
from core.errors import ValidationFailure, error_kind
from core.fs_tools import build_toolset
from core.stage_runner import StageRunner
from core.state import FinalArtifact, PipelineRequest, PipelineStage, RunState
from utils.baseline_store import get_baseline_by_type
from utils.llm import OracleGateway

logger = logging.getLogger(__name__)


class PipelineOrchestrator:
    """Runs INIT → PREPROCESS → PLAN → RESEARCH → CODEGEN → FILE_PATCH → ASSEMBLE → DONE.

    Each run owns one SandboxSession, created at INIT and deleted when the
    run ends, whichever way it ends. Runs share no mutable state, so one
    orchestrator can serve many concurrent runs.
    """

    def __init__(self, oracle=None, settings=None, stage_runner=None, engine=None,
                 baseline_store=None, sleep=asyncio.sleep):
        self.settings = settings or load_settings()
        self.oracle = oracle or OracleGateway()
        self.stage_runner = stage_runner or StageRunner(
            self.oracle,
            max_attempts=self.settings["backoff_attempts"],
            base_delay=self.settings["backoff_base_delay"],
            sleep=sleep,
            thresholds=self.settings["confidence"],
        )
        self.engine = engine or DiffMutationEngine(
            self.oracle,
            config=PATCHER,
            max_attempts=self.settings["patch_attempts"],
            fuzz_factor=self.settings["fuzz_factor"],
            base_delay=self.settings["backoff_base_delay"],
            sleep=sleep,
        )
        self.baseline_store = baseline_store or functools.partial(
            get_baseline_by_type, default_template=self.settings["default_template"],
        )
        self.agents = [PreprocessingAgent(), PlannerAgent(), ResearchAgent(), CodeGenerationAgent()]
        self.patch_composer = PatchComposer(max_edits=self.settings["max_edits"])

    def validate_request(self, request):
        minimum = self.settings["min_prompt_length"]
        if len(request.user_prompt.strip()) < minimum:
            raise ValidationFailure(f"userPrompt must be at least {minimum} characters")

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def run(self, request, cancel=None) -> FinalArtifact:
        """Run the pipeline and return the final artifact; raises on failure."""
        return await self._drive(RunState(request=request), cancel)

    async def execute(self, request, cancel=None):
        """Run the pipeline and return a JSON-safe success or failure payload.

        Args:
            request: PipelineRequest, or an inbound dict (camelCase or snake_case).
            cancel: Optional asyncio.Event.
        """
        if isinstance(request, dict):
            request = PipelineRequest.from_dict(request)
        state = RunState(request=request)
        try:
            artifact = await self._drive(state, cancel)
        except Exception as exc:
            return {
                "success": False,
                "error_kind": error_kind(exc),
                "failing_stage": state.failed_stage.value if state.failed_stage else None,
                "message": str(exc),
            }
        return {
            "success": True,
            "artifact": artifact.to_dict(),
            "stages": {name: output.to_dict() for name, output in artifact.stages.items()},
        }

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    async def _drive(self, state, cancel):
        try:
            return await self._run_stages(state, cancel)
        except BaseException as exc:
            state.failed_stage = state.status
            state.status = PipelineStage.FAILED
            logger.error("[pipeline] failed at %s: %s: %s",
                         state.failed_stage.value, error_kind(exc), exc)
            raise
        finally:
            self._teardown(state)

    async def _run_stages(self, state, cancel):
        # INIT
        state.status = PipelineStage.INIT
        raise_if_cancelled(cancel, "before init")
        self.validate_request(state.request)
        state.session = sandbox.create_session(
            base_dir=self.settings["sandbox_dir"] or None,
            allowed_extensions=self.settings["allowed_extensions"],
            max_artifact_bytes=self.settings["max_artifact_bytes"],
        )
        tag = f"[pipeline:{state.session.id[:8]}]"

        # PREPROCESS → PLAN → RESEARCH → CODEGEN
        prior = state.request
        for agent in self.agents:
            raise_if_cancelled(cancel, f"before {agent.stage.value}")
            state.status = agent.stage
            logger.info("%s %s started", tag, agent.stage.value)
            output = await self.stage_runner.run_agent(agent, prior, cancel=cancel)
            state.outputs[agent.stage.value] = output
            logger.info("%s %s finished%s", tag, agent.stage.value,
                        " (fallback)" if output.used_fallback else "")
            prior = output.value

            if agent.stage is PipelineStage.PREPROCESS:
                self._seed_baseline(state, output.value)

        # FILE_PATCH
        raise_if_cancelled(cancel, "before file_patch")
        state.status = PipelineStage.FILE_PATCH
        await self._apply_edits(state, prior, cancel, tag)

        # ASSEMBLE
        raise_if_cancelled(cancel, "before assemble")
        state.status = PipelineStage.ASSEMBLE
        source_text = sandbox.read_file(state.session, state.artifact_path)
        artifact = FinalArtifact(
            id=state.session.id,
            title=prior.title or state.title,
            template_type=state.template_type,
            filename=state.artifact_path,
            source_text=source_text,
            stages=dict(state.outputs),
            patches=list(state.patches),
        )
        state.status = PipelineStage.DONE
        logger.info("%s done: %s (%d patch(es))", tag, artifact.title, len(artifact.patches))
        return artifact

    def _seed_baseline(self, state, preprocessing):
        """Copy the baseline for the selected template into the sandbox."""
        industry = state.request.industry or preprocessing.business_analysis.industry or None
        baseline = self.baseline_store(preprocessing.selected_template, industry=industry)
        sandbox.copy_in(state.session, baseline.filename, baseline.source_text)
        state.artifact_path = baseline.filename
        state.template_type = baseline.type
        state.title = baseline.title
        logger.info("[pipeline:%s] seeded baseline %s (%s)",
                    state.session.id[:8], baseline.filename, baseline.type)

    async def _apply_edits(self, state, codegen, cancel, tag):
        instructions = self.patch_composer.compose(codegen)
        max_steps = self.settings["patch_max_steps"]
        tools = build_toolset(state.session) if max_steps > 1 else None

        expected_hash = None
        for index, instruction in enumerate(instructions, 1):
            raise_if_cancelled(cancel, f"before edit {index}")
            logger.info("%s edit %d/%d: %s", tag, index, len(instructions), instruction[:80])
            result = await self.engine.apply_edit(
                state.session,
                state.artifact_path,
                instruction,
                expected_hash=expected_hash,
                tools=tools,
                max_steps=max_steps,
                cancel=cancel,
            )
            state.patches.append(result)
            expected_hash = result.new_hash

    def _teardown(self, state):
        if state.session is None or state.torn_down:
            return
        sandbox.teardown_session(state.session)
        state.torn_down = True
