"""Follow-up prompt configuration and the message templates sent to agents."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Literal, Sequence
from urllib.parse import quote

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .config import CsaSettings
from .jobs.models import Job, Task
from .storage.atomic import write_json_atomic

logger = logging.getLogger(__name__)

AGENT_ID_PLACEHOLDER = "{agentId}"

DEFAULT_FOLLOW_UP_PROMPTS: tuple[str, ...] = (
    "Verify if the changes you have implemented are actually working and align with the instructions provided!",
    "to hand off your work run the following command: csa complete {agentId}",
)

ConfigSource = Literal["env", "local", "global", "default"]

# Characters encodeURIComponent leaves as-is; "+" is always escaped to %2B.
_URI_COMPONENT_SAFE = "-_.!~*'()"


class ConfigFile(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    follow_up_prompts: list[str] = Field(default_factory=list, alias="followUpPrompts")


@dataclass(slots=True)
class ActiveConfig:
    config: ConfigFile
    source: ConfigSource
    path: Path | None


def load_config(path: Path) -> ConfigFile | None:
    """Return the config at ``path``, or ``None`` if it is missing or malformed."""

    try:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
    except FileNotFoundError:
        return None
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("Ignoring unreadable config file", extra={"path": str(path), "error": str(exc)})
        return None
    if not isinstance(raw, dict) or not isinstance(raw.get("followUpPrompts"), list):
        return None
    try:
        return ConfigFile.model_validate(raw)
    except ValidationError as exc:
        logger.warning("Ignoring invalid config file", extra={"path": str(path), "error": str(exc)})
        return None


def save_config(path: Path, config: ConfigFile) -> None:
    write_json_atomic(Path(path), config.model_dump(mode="json", by_alias=True))


def active_config(local_path: Path, global_path: Path) -> ActiveConfig:
    """Resolve the config file in effect: local, then global, then the built-in defaults."""

    local = load_config(local_path)
    if local is not None:
        return ActiveConfig(local, "local", Path(local_path))
    global_config = load_config(global_path)
    if global_config is not None:
        return ActiveConfig(global_config, "global", Path(global_path))
    return ActiveConfig(ConfigFile(followUpPrompts=list(DEFAULT_FOLLOW_UP_PROMPTS)), "default", None)


def parse_prompt_override(value: str) -> list[str]:
    """Parse the environment override: a JSON array, a ``|``-delimited list, or one prompt."""

    try:
        parsed = json.loads(value)
    except json.JSONDecodeError:
        parsed = None
    if isinstance(parsed, list):
        return [item if isinstance(item, str) else json.dumps(item) for item in parsed]

    if "|" in value:
        return [part.strip() for part in value.split("|") if part.strip()]
    return [value]


def substitute_agent_id(prompts: Sequence[str], agent_id: str) -> list[str]:
    return [prompt.replace(AGENT_ID_PLACEHOLDER, agent_id) for prompt in prompts]


def resolve_follow_up_prompts(agent_id: str, settings: CsaSettings) -> tuple[list[str], ConfigSource]:
    """Return the follow-up prompts for ``agent_id`` and where they came from.

    Priority: environment override, project config, global config, defaults.
    """

    if settings.followup_prompts:
        return substitute_agent_id(parse_prompt_override(settings.followup_prompts), agent_id), "env"

    active = active_config(settings.project_config_file, settings.global_config_file)
    return substitute_agent_id(active.config.follow_up_prompts, agent_id), active.source


def build_prompt_url(base_url: str, text: str) -> str:
    """Build the deep link that opens a new chat pre-filled with ``text``."""

    return f"{base_url}?text={quote(text, safe=_URI_COMPONENT_SAFE)}"


def goal_prompt(goal: str) -> str:
    return f"{goal}\n\nThis is just the goal, don't start working yet - this is only for your understanding."


def overview_prompt(job: Job) -> str:
    task_names = "\n".join(f"{index}. {task.name}" for index, task in enumerate(job.tasks, start=1))
    return (
        f"This job consists of {len(job.tasks)} task(s) that you will tackle step by step:\n\n"
        f"{task_names}\n\n"
        'Please acknowledge by saying "okay" or "understood" when you\'re ready to begin.\n\n'
        "This is your general task. Don't start working yet - wait for me to send you the specific tasks one by one."
    )


def files_instruction(files: Sequence[str]) -> str:
    if not files:
        return ""
    if len(files) == 1:
        return f"You are expected to read {files[0]}."
    listing = "\n".join(f"{index}. {path}" for index, path in enumerate(files, start=1))
    return f"You are expected to read the following files:\n{listing}"


def kickoff_prompt(task: Task) -> str:
    instruction = files_instruction(task.files)
    middle = f" {instruction}" if instruction else ""
    return (
        f"You have the following task: {task.prompt}.{middle} Task type: {task.type}.\n\n"
        "Don't start working yet - wait for me to send you the commands."
    )


def command_prompt(command: str) -> str:
    return f"/{command}"


def hand_in_prompt(agent_id: str) -> str:
    return f"\n\nExecute this command to hand in your work: csa complete {agent_id}"


SUMMARY_PROMPT = "\n\nSummarize what you have learned, and what you have done. Short and concise."


__all__ = [
    "AGENT_ID_PLACEHOLDER",
    "ActiveConfig",
    "ConfigFile",
    "DEFAULT_FOLLOW_UP_PROMPTS",
    "SUMMARY_PROMPT",
    "active_config",
    "build_prompt_url",
    "command_prompt",
    "files_instruction",
    "goal_prompt",
    "hand_in_prompt",
    "kickoff_prompt",
    "load_config",
    "overview_prompt",
    "parse_prompt_override",
    "resolve_follow_up_prompts",
    "save_config",
    "substitute_agent_id",
]
