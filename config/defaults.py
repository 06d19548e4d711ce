"""Default pipeline settings. Every key can be overridden from the environment."""

import os

DEFAULTS = {
    "min_prompt_length": 10,
    "max_artifact_bytes": 1 * 1024 * 1024,
    "allowed_extensions": [".ts", ".tsx", ".js", ".jsx", ".json", ".md", ".html", ".css", ".txt"],
    "backoff_attempts": 6,      # 1s, 2s, 4s, 8s, 16s, 32s
    "backoff_base_delay": 1.0,
    "patch_attempts": 3,
    "fuzz_factor": 10,
    "patch_max_steps": 4,
    "max_edits": 12,
    "sandbox_dir": "",          # empty = system temp dir
    "default_template": "calculator",
    "confidence": {
        "min_fit_score": 80,
        "min_plan_modifications": 1,
        "min_research_keys": 1,
        "min_codegen_edits": 1,
    },
}

# env var -> (settings key, parser)
_ENV_OVERRIDES = {
    "SURGEON_MAX_ARTIFACT_BYTES": ("max_artifact_bytes", int),
    "SURGEON_BACKOFF_ATTEMPTS": ("backoff_attempts", int),
    "SURGEON_BACKOFF_BASE_DELAY": ("backoff_base_delay", float),
    "SURGEON_PATCH_ATTEMPTS": ("patch_attempts", int),
    "SURGEON_FUZZ_FACTOR": ("fuzz_factor", int),
    "SURGEON_PATCH_MAX_STEPS": ("patch_max_steps", int),
    "SURGEON_MAX_EDITS": ("max_edits", int),
    "SURGEON_SANDBOX_DIR": ("sandbox_dir", str),
    "SURGEON_DEFAULT_TEMPLATE": ("default_template", str),
}

_CONFIDENCE_OVERRIDES = {
    "SURGEON_MIN_FIT_SCORE": ("min_fit_score", float),
    "SURGEON_MIN_PLAN_MODIFICATIONS": ("min_plan_modifications", int),
    "SURGEON_MIN_RESEARCH_KEYS": ("min_research_keys", int),
    "SURGEON_MIN_CODEGEN_EDITS": ("min_codegen_edits", int),
}


def _parse(var, raw, parser):
    try:
        return parser(raw.strip())
    except ValueError:
        raise ValueError(f"Invalid value for {var}: {raw!r}") from None


def _parse_extensions(raw):
    exts = []
    for item in raw.split(","):
        item = item.strip()
        if not item:
            continue
        if item != "*" and not item.startswith("."):
            item = "." + item
        exts.append(item.lower())
    return exts


def load_settings(environ=None):
    """Return a fresh settings dict: DEFAULTS overlaid with SURGEON_* variables.

    Args:
        environ: Mapping to read overrides from (defaults to os.environ).

    Raises:
        ValueError: If a numeric override cannot be parsed.
    """
    env = os.environ if environ is None else environ

    settings = dict(DEFAULTS)
    settings["allowed_extensions"] = list(DEFAULTS["allowed_extensions"])
    settings["confidence"] = dict(DEFAULTS["confidence"])

    for var, (key, parser) in _ENV_OVERRIDES.items():
        if env.get(var):
            settings[key] = _parse(var, env[var], parser)

    for var, (key, parser) in _CONFIDENCE_OVERRIDES.items():
        if env.get(var):
            settings["confidence"][key] = _parse(var, env[var], parser)

    if env.get("SURGEON_ALLOWED_EXTENSIONS"):
        settings["allowed_extensions"] = _parse_extensions(env["SURGEON_ALLOWED_EXTENSIONS"])

    return settings
