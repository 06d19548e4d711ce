"""Patch composer: turns codegen modifications into edit instructions. Zero LLM calls."""

import json

# Edit application order, by modification type
TYPE_PRIORITY = ("text", "styling", "input", "calculation", "function", "section")

_OPERATION_VERBS = {
    "modify": "Modify",
    "add": "Add",
    "remove": "Remove",
    "replace": "Replace",
}


def _value(value):
    if isinstance(value, str):
        return f'"{value}"'
    return json.dumps(value, default=str)


def render_instruction(mod):
    """Render one Modification as a single natural-language edit instruction."""
    details = mod.details
    verb = _OPERATION_VERBS.get(mod.operation, mod.operation.capitalize())

    if details.from_value is not None and details.to is not None:
        line = f"In {mod.target}, change {_value(details.from_value)} to {_value(details.to)}."
    elif mod.operation == "remove":
        line = f"Remove {details.remove_target or mod.target}."
    elif mod.operation == "replace" and details.replace_with is not None:
        line = f"Replace {mod.target} with {_value(details.replace_with)}."
    elif mod.operation == "add" and details.new_element is not None:
        where = f" {details.insert_position} {mod.target}" if details.insert_position else f" to {mod.target}"
        line = f"Add {_value(details.new_element)}{where}."
    else:
        line = f"{verb} the {mod.type} element {mod.target}."

    extras = details.model_dump(
        exclude={"from_value", "to", "insert_position", "remove_target", "new_element", "replace_with"},
        exclude_none=True,
        exclude_defaults=True,
    )
    if extras:
        line += " Details: " + ", ".join(f"{k}={_value(v)}" for k, v in sorted(extras.items()))
    if mod.reasoning:
        line += f" ({mod.reasoning})"
    return line


class PatchComposer:
    """Orders modifications by type priority and formats one instruction per edit."""

    name = "patch_composer"

    def __init__(self, max_edits=12):
        self.max_edits = max_edits

    def order(self, modifications):
        """Stable sort by TYPE_PRIORITY; unknown types go last."""
        rank = {t: i for i, t in enumerate(TYPE_PRIORITY)}
        return sorted(modifications, key=lambda m: rank.get(m.type, len(rank)))

    def compose(self, result):
        """Return the ordered edit instructions for a CodeGenerationResult."""
        ordered = self.order(result.modifications)
        return [render_instruction(m) for m in ordered[: self.max_edits]]
