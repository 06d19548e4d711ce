"""Oracle gateway: structured and freeform generation against Anthropic or OpenAI.

The gateway only calls providers and classifies their failures. It never
retries and never decides to fall back; those policies live in
core.backoff and core.stage_runner.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

import anthropic
import openai
from pydantic import BaseModel, ValidationError

from core.errors import OracleError, OracleFatal, TransientOverload, ValidationFailure

logger = logging.getLogger(__name__)

_OVERLOAD_STATUS = {429, 503, 529}
_STRUCTURED_TOOL = "emit_result"


@dataclass(frozen=True)
class Tool:
    """A capability the oracle may call during freeform generation."""

    description: str
    input_schema: dict
    handler: Callable[[dict], Awaitable[Any]]


def strip_fences(text):
    """Remove a surrounding markdown code fence, if the model added one anyway."""
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = re.sub(r"^```\w*\n?", "", cleaned)
        cleaned = re.sub(r"\n?```$", "", cleaned)
    return cleaned.strip()


def is_overload(exc: BaseException) -> bool:
    """True for rate-limit / capacity signals from either SDK."""
    if isinstance(exc, (anthropic.RateLimitError, openai.RateLimitError)):
        return True
    status = getattr(exc, "status_code", None) or getattr(exc, "status", None)
    if status in _OVERLOAD_STATUS:
        return True
    return "overloaded" in str(exc).lower()


def translate_error(exc: BaseException) -> OracleError:
    """Map an SDK exception onto TransientOverload or OracleFatal."""
    if isinstance(exc, OracleError):
        return exc
    if is_overload(exc):
        return TransientOverload(f"Provider overloaded: {exc}")
    return OracleFatal(f"{type(exc).__name__}: {exc}")


def classify(exc: BaseException) -> str:
    """Classify any error raised by the gateway as 'retryable' or 'fatal'."""
    return "retryable" if isinstance(translate_error(exc), TransientOverload) else "fatal"


def _api_key(env_var):
    key = os.environ.get(env_var)
    if not key:
        raise OracleFatal(
            f"{env_var} environment variable is not set. "
            f"Export it before running the pipeline:\n  export {env_var}='your-key-here'"
        )
    return key


class OracleGateway:
    """Wraps provider SDK clients behind two operations.

    Clients are created lazily from environment keys, one per running event
    loop, since Flask runs each async view on its own loop. Tests (or callers with
    their own transport) can pass pre-built async clients instead.
    """

    def __init__(self, anthropic_client=None, openai_client=None):
        self._anthropic = anthropic_client
        self._openai = openai_client
        self._loop_clients = {}   # provider -> (loop, client)

    def _client_for_loop(self, provider, factory):
        loop = asyncio.get_running_loop()
        cached = self._loop_clients.get(provider)
        if cached is None or cached[0] is not loop:
            logger.debug("[oracle] new %s client for loop %x", provider, id(loop))
            cached = (loop, factory())
            self._loop_clients[provider] = cached
        return cached[1]

    def _anthropic_client(self):
        if self._anthropic is not None:
            return self._anthropic
        # SDK-level retries are disabled: run_with_backoff is the only retry loop
        return self._client_for_loop("anthropic", lambda: anthropic.AsyncAnthropic(
            api_key=_api_key("ANTHROPIC_API_KEY"), max_retries=0,
        ))

    def _openai_client(self):
        if self._openai is not None:
            return self._openai
        return self._client_for_loop("openai", lambda: openai.AsyncOpenAI(
            api_key=_api_key("OPENAI_API_KEY"), max_retries=0,
        ))

    # ------------------------------------------------------------------
    # Structured generation
    # ------------------------------------------------------------------

    async def generate_structured(self, prompt: str, shape: type[BaseModel], config) -> BaseModel:
        """Generate a value conforming to ``shape``.

        Raises:
            TransientOverload: Provider signalled rate limit or capacity.
            ValidationFailure: Output did not validate against ``shape``.
            OracleFatal: Anything else.
        """
        logger.debug("[oracle] structured %s via %s/%s (%d chars)",
                     shape.__name__, config.provider, config.model, len(prompt))
        try:
            if config.provider == "anthropic":
                data = await self._anthropic_structured(prompt, shape, config)
            elif config.provider == "openai":
                data = await self._openai_structured(prompt, shape, config)
            else:
                raise OracleFatal(f"Unknown provider: {config.provider}")
        except OracleError:
            raise
        except Exception as exc:
            raise translate_error(exc) from exc

        try:
            return shape.model_validate(data)
        except ValidationError as exc:
            raise ValidationFailure(
                f"{config.name} output does not match {shape.__name__}: {exc.error_count()} error(s)"
            ) from exc

    async def _anthropic_structured(self, prompt, shape, config):
        client = self._anthropic_client()
        response = await client.messages.create(
            model=config.model,
            max_tokens=config.max_tokens,
            messages=[{"role": "user", "content": prompt}],
            tools=[{
                "name": _STRUCTURED_TOOL,
                "description": f"Return the {shape.__name__} result.",
                "input_schema": shape.model_json_schema(by_alias=True),
            }],
            tool_choice={"type": "tool", "name": _STRUCTURED_TOOL},
        )
        for block in response.content:
            if getattr(block, "type", None) == "tool_use":
                return block.input
        raise ValidationFailure(f"{config.name} returned no structured result")

    async def _openai_structured(self, prompt, shape, config):
        client = self._openai_client()
        schema = json.dumps(shape.model_json_schema(by_alias=True))
        response = await client.chat.completions.create(
            model=config.model,
            max_tokens=config.max_tokens,
            temperature=config.temperature,
            response_format={"type": "json_object"},
            messages=[
                {"role": "system", "content": (
                    "Respond ONLY with a JSON object matching this JSON schema. "
                    f"No markdown fences, no commentary.\n{schema}"
                )},
                {"role": "user", "content": prompt},
            ],
        )
        text = response.choices[0].message.content or ""
        try:
            return json.loads(strip_fences(text))
        except json.JSONDecodeError as exc:
            raise ValidationFailure(f"{config.name} returned invalid JSON: {exc}") from exc

    # ------------------------------------------------------------------
    # Freeform generation
    # ------------------------------------------------------------------

    async def generate_freeform(self, prompt: str, config, tools: dict | None = None,
                                max_steps: int = 1) -> str:
        """Generate free text, letting the model call ``tools`` for up to max_steps rounds.

        Raises:
            TransientOverload / OracleFatal, as for generate_structured.
        """
        logger.debug("[oracle] freeform via %s/%s (%d chars, %d tool(s))",
                     config.provider, config.model, len(prompt), len(tools or {}))
        try:
            if config.provider == "anthropic":
                return await self._anthropic_freeform(prompt, config, tools or {}, max_steps)
            if config.provider == "openai":
                return await self._openai_freeform(prompt, config, tools or {}, max_steps)
            raise OracleFatal(f"Unknown provider: {config.provider}")
        except OracleError:
            raise
        except Exception as exc:
            raise translate_error(exc) from exc

    async def _anthropic_freeform(self, prompt, config, tools, max_steps):
        client = self._anthropic_client()
        messages = [{"role": "user", "content": prompt}]
        kwargs = {}
        if tools:
            kwargs["tools"] = [
                {"name": name, "description": t.description, "input_schema": t.input_schema}
                for name, t in tools.items()
            ]

        for step in range(max(max_steps, 1)):
            response = await client.messages.create(
                model=config.model,
                max_tokens=config.max_tokens,
                messages=messages,
                **kwargs,
            )
            calls = [b for b in response.content if getattr(b, "type", None) == "tool_use"]
            if response.stop_reason != "tool_use" or not calls or step + 1 >= max_steps:
                return "".join(
                    b.text for b in response.content if getattr(b, "type", None) == "text"
                )

            results = []
            for call in calls:
                output = await _run_tool(tools, call.name, call.input)
                results.append({"type": "tool_result", "tool_use_id": call.id, "content": output})
            messages.append({"role": "assistant", "content": response.content})
            messages.append({"role": "user", "content": results})
        return ""

    async def _openai_freeform(self, prompt, config, tools, max_steps):
        client = self._openai_client()
        messages = [{"role": "user", "content": prompt}]
        kwargs = {}
        if tools:
            kwargs["tools"] = [
                {"type": "function", "function": {
                    "name": name, "description": t.description, "parameters": t.input_schema,
                }}
                for name, t in tools.items()
            ]

        for step in range(max(max_steps, 1)):
            response = await client.chat.completions.create(
                model=config.model,
                max_tokens=config.max_tokens,
                temperature=config.temperature,
                messages=messages,
                **kwargs,
            )
            message = response.choices[0].message
            calls = message.tool_calls or []
            if not calls or step + 1 >= max_steps:
                return message.content or ""

            messages.append({
                "role": "assistant",
                "content": message.content,
                "tool_calls": [
                    {"id": c.id, "type": "function",
                     "function": {"name": c.function.name, "arguments": c.function.arguments}}
                    for c in calls
                ],
            })
            for call in calls:
                try:
                    args = json.loads(call.function.arguments or "{}")
                except json.JSONDecodeError:
                    args = {}
                output = await _run_tool(tools, call.function.name, args)
                messages.append({"role": "tool", "tool_call_id": call.id, "content": output})
        return ""


async def _run_tool(tools, name, args):
    """Run one tool call and return its output as text for the model.

    Tool errors are reported back to the model as text rather than raised:
    the model asked for something it may not have (a bad path, say) and can
    recover in its next step.
    """
    tool = tools.get(name)
    if tool is None:
        return f"ERROR: unknown tool {name}"
    try:
        result = await tool.handler(args or {})
    except (ValueError, OSError) as exc:
        logger.info("[oracle] tool %s failed: %s", name, exc)
        return f"ERROR: {exc}"
    return result if isinstance(result, str) else json.dumps(result)
