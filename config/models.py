"""Provider configurations for the oracle calls made by each component."""

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class ProviderConfig:
    name: str           # "primary", "fallback", "patcher" (used in logs)
    provider: str       # "anthropic" | "openai"
    model: str
    temperature: float = 0.2    # sent to OpenAI only
    max_tokens: int = 4096


PRIMARY = ProviderConfig(
    name="primary",
    provider="anthropic",
    model=os.environ.get("SURGEON_PRIMARY_MODEL", "claude-sonnet-4-5-20250929"),
)

FALLBACK = ProviderConfig(
    name="fallback",
    provider="openai",
    model=os.environ.get("SURGEON_FALLBACK_MODEL", "gpt-4o"),
)

# Diff generation wants determinism more than creativity
PATCHER = ProviderConfig(
    name="patcher",
    provider="openai",
    model=os.environ.get("SURGEON_PATCHER_MODEL", "gpt-4o"),
    temperature=0.0,
    max_tokens=2048,
)
