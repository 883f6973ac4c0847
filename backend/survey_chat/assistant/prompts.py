"""Survey context wording loaded from YAML."""

from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml

_DEFAULT_PATH = Path(__file__).parent / "survey_context.yaml"


@lru_cache(maxsize=4)
def load_context_templates(path: Path | None = None) -> dict[str, Any]:
    """Load the context-injection templates.

    Raises:
        FileNotFoundError: If the template file does not exist.
        yaml.YAMLError: If the file contains invalid YAML.
    """
    config_path = path or _DEFAULT_PATH

    if not config_path.exists():
        raise FileNotFoundError(f"Context template file not found: {config_path}")

    with open(config_path, encoding="utf-8") as f:
        config: dict[str, Any] = yaml.safe_load(f)

    return config


def context_keys() -> list[str]:
    return list(load_context_templates()["contexts"])


def render_context_message(key: str, value: str, *, update: bool = False) -> str:
    """Build the thread message announcing (or correcting) a context value."""
    templates = load_context_templates()
    context = templates["contexts"][key]
    body = templates["update" if update else "initial"].format(
        value=value, label=context["label"], question=context["question"]
    )
    return f"{templates['tag']}\n{body.strip()}"


def build_run_instructions(values: dict[str, str]) -> str | None:
    """Per-run additional instructions restating every supplied context value."""
    if not values:
        return None
    templates = load_context_templates()
    blocks = []
    for key, value in values.items():
        context = templates["contexts"][key]
        blocks.append(
            templates["run_instructions"]
            .format(value=value, label=context["label"], question=context["question"])
            .strip()
        )
    return "\n\n".join(blocks)


def substitute_placeholders(reply: str, replacements: dict[str, str]) -> str:
    """Replace ``${Name}`` / ``{Name}`` placeholders the assistant echoed back.

    ``replacements`` maps placeholder names to values; empty values are skipped.
    """
    if not reply:
        return reply
    for name, value in replacements.items():
        if not value:
            continue
        reply = reply.replace("${" + name + "}", value).replace("{" + name + "}", value)
    return reply


def placeholder_values(values: dict[str, str], participant_id: str | None) -> dict[str, str]:
    """Expand context values onto every placeholder spelling configured for them."""
    templates = load_context_templates()
    replacements: dict[str, str] = {}
    for key, value in values.items():
        for name in templates["contexts"][key].get("placeholders", []):
            replacements[name] = value
    if participant_id:
        replacements["ParticipantID"] = participant_id
        replacements["participantId"] = participant_id
    return replacements
