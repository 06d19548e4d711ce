"""Stage runner: one structured oracle call, a confidence check, at most one fallback."""

from __future__ import annotations

import asyncio
import logging

from config.defaults import DEFAULTS
from config.models import FALLBACK, PRIMARY
from core.backoff import classify_overload, raise_if_cancelled, run_with_backoff
from core.errors import OracleError, StageFailure, ValidationFailure
from core.state import StageOutput

logger = logging.getLogger(__name__)


class StageRunner:
    """Runs pipeline stages against a primary and a fallback provider configuration.

    The fallback is used when the primary call fails (after overload retries)
    or when its result fails the stage's confidence predicate. The fallback
    result is returned as-is: worst case, a stage costs two oracle round-trips
    plus overload backoff.
    """

    def __init__(self, oracle, primary=PRIMARY, fallback=FALLBACK, max_attempts=None,
                 base_delay=None, sleep=asyncio.sleep, thresholds=None):
        self.oracle = oracle
        self.primary = primary
        self.fallback = fallback
        self.max_attempts = max_attempts or DEFAULTS["backoff_attempts"]
        self.base_delay = DEFAULTS["backoff_base_delay"] if base_delay is None else base_delay
        self.sleep = sleep
        self.thresholds = thresholds or dict(DEFAULTS["confidence"])

    async def _generate(self, config, prompt, shape, stage, cancel):
        return await run_with_backoff(
            lambda: self.oracle.generate_structured(prompt, shape, config),
            self.max_attempts,
            classify_overload,
            base_delay=self.base_delay,
            sleep=self.sleep,
            cancel=cancel,
            label=f"{stage.value}/{config.name}",
        )

    async def run_stage(self, stage, prior_output, prompt_builder, shape,
                        confidence_predicate, cancel=None) -> StageOutput:
        """Run one stage and return its validated output.

        Args:
            stage: PipelineStage being run (used for logs and errors).
            prior_output: The previous stage's validated value (or the request).
            prompt_builder: prior_output -> prompt text.
            shape: Pydantic model the result must validate against.
            confidence_predicate: result -> None if trustworthy, else a reason.
            cancel: Optional asyncio.Event.

        Raises:
            StageFailure: The fallback call failed too.
            PipelineCancelled: ``cancel`` was set.
        """
        tag = f"[stage:{stage.value}]"
        raise_if_cancelled(cancel, f"before {stage.value}")
        prompt = prompt_builder(prior_output)
        logger.debug("%s prompt built (%d chars)", tag, len(prompt))

        # A primary failure is caught only to trigger the one fallback call.
        try:
            result = await self._generate(self.primary, prompt, shape, stage, cancel)
        except OracleError as exc:
            reason = f"Primary call failed ({exc.kind}): {exc}"
            logger.warning("%s %s", tag, reason)
        else:
            reason = confidence_predicate(result)
            if reason is None:
                logger.info("%s primary result accepted", tag)
                return StageOutput(stage=stage, value=result)
            logger.warning("%s low confidence: %s", tag, reason)

        logger.info("%s falling back to %s/%s", tag, self.fallback.provider, self.fallback.model)
        try:
            result = await self._generate(self.fallback, prompt, shape, stage, cancel)
        except OracleError as exc:
            logger.error("%s fallback failed: %s", tag, exc)
            raise StageFailure(stage.value, exc) from exc

        return StageOutput(stage=stage, value=result, used_fallback=True, fallback_reason=reason)

    async def run_agent(self, agent, prior_output, cancel=None) -> StageOutput:
        """Run a StageAgent: validate its input, run the stage, apply its post-transform."""
        try:
            agent.validate_input(prior_output)
        except ValidationFailure as exc:
            raise StageFailure(agent.stage.value, exc) from exc

        output = await self.run_stage(
            agent.stage,
            prior_output,
            agent.build_prompt,
            agent.shape,
            lambda result: agent.low_confidence_reason(result, self.thresholds),
            cancel=cancel,
        )
        value = agent.transform(output.value)
        if value is output.value:
            return output
        return StageOutput(
            stage=output.stage,
            value=value,
            used_fallback=output.used_fallback,
            fallback_reason=output.fallback_reason,
        )
