"""Baseline artifact store: read-only access to templates/baselines/."""

import json
import logging
import os
from dataclasses import dataclass

from config.defaults import DEFAULTS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Baseline:
    type: str
    title: str
    filename: str
    source_text: str
    industry: str = ""
    description: str = ""


def get_baselines_dir():
    """Return the absolute path to the baselines directory."""
    return os.path.join(os.path.dirname(os.path.dirname(__file__)), "templates", "baselines")


def load_index(baselines_dir=None):
    """Return the parsed index.json: {type: [entry, ...]}."""
    baselines_dir = baselines_dir or get_baselines_dir()
    with open(os.path.join(baselines_dir, "index.json"), encoding="utf-8") as f:
        return json.load(f)


def _read_source(baselines_dir, filename):
    path = os.path.join(baselines_dir, filename)
    resolved = os.path.realpath(path)
    if not resolved.startswith(os.path.realpath(baselines_dir) + os.sep):
        raise ValueError(f"Baseline path escapes baselines directory: {filename}")
    with open(resolved, "r", encoding="utf-8", newline="") as f:
        return f.read()


def list_baselines(baselines_dir=None):
    """Metadata for every baseline, without source text."""
    index = load_index(baselines_dir)
    return [
        {"type": template_type, **entry}
        for template_type, entries in index.items()
        for entry in entries
    ]


def get_baseline_by_type(template_type, industry=None, baselines_dir=None, default_template=None):
    """Return the baseline for a template type.

    An entry whose industry matches ``industry`` (case-insensitive) is
    preferred; otherwise the type's first entry is used. Unknown types fall
    back to ``default_template`` (DEFAULTS["default_template"] if not given).

    Raises:
        KeyError: If neither the type nor the default template exists.
    """
    baselines_dir = baselines_dir or get_baselines_dir()
    index = load_index(baselines_dir)

    entries = index.get(template_type)
    if not entries:
        default = default_template or DEFAULTS["default_template"]
        logger.warning("[baseline] no baseline for type %r, using %r", template_type, default)
        entries = index.get(default)
        if not entries:
            raise KeyError(f"No baseline for {template_type!r} and no default {default!r}")
        template_type = default

    entry = entries[0]
    if industry:
        wanted = industry.strip().lower()
        for candidate in entries:
            if candidate.get("industry", "").lower() == wanted:
                entry = candidate
                break

    return Baseline(
        type=template_type,
        title=entry["title"],
        filename=entry["filename"],
        source_text=_read_source(baselines_dir, entry["filename"]),
        industry=entry.get("industry", ""),
        description=entry.get("description", ""),
    )
