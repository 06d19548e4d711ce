"""Folder naming utilities for CLI output: slug generation, containment, dedup."""

import os
import re

BASE_DIR = os.path.dirname(os.path.dirname(__file__))
OUTPUT_DIR = "generated"
MAX_DEDUP = 1000

_FILLER = {
    "build", "me", "a", "an", "the", "create", "make", "generate", "for", "to",
    "with", "using", "that", "and", "my", "our", "i", "we", "want", "need",
    "please", "can", "you", "some", "new", "tool", "lead", "magnet",
}


def slugify(text):
    """Convert text to a filesystem-safe slug."""
    text = text.lower().strip()
    text = re.sub(r"[^\w\s-]", "", text)
    text = re.sub(r"[\s_-]+", "_", text)
    return text.strip("_")


def extract_project_name(text):
    """Pull a short project name out of a title or prompt."""
    words = re.sub(r"[^\w\s]", "", text.lower()).split()
    meaningful = [w for w in words if w not in _FILLER]
    name = "_".join(meaningful[:3]) if meaningful else "artifact"
    return slugify(name)


def _check_containment(path, base_dir):
    resolved = os.path.realpath(path)
    if not resolved.startswith(os.path.realpath(base_dir) + os.sep):
        raise ValueError(f"Generated output path escapes base directory: {path}")
    return resolved


def get_output_dir(name, base_dir=None):
    """Return a deduplicated, not-yet-existing directory for a generated artifact."""
    base_dir = base_dir or BASE_DIR
    base = os.path.join(base_dir, OUTPUT_DIR, extract_project_name(name))
    _check_containment(base, base_dir)

    if not os.path.exists(base):
        return base

    for counter in range(2, MAX_DEDUP + 2):
        candidate = f"{base}_{counter}"
        if not os.path.exists(candidate):
            return candidate

    raise RuntimeError(f"Too many duplicate artifacts (>{MAX_DEDUP}) for: {name}")
