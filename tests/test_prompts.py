from __future__ import annotations

import json

from cursor_sub_agents.jobs import Job, Task
from cursor_sub_agents.prompts import (
    DEFAULT_FOLLOW_UP_PROMPTS,
    ConfigFile,
    active_config,
    build_prompt_url,
    files_instruction,
    goal_prompt,
    hand_in_prompt,
    kickoff_prompt,
    overview_prompt,
    parse_prompt_override,
    resolve_follow_up_prompts,
    save_config,
)


def test_parse_prompt_override_forms() -> None:
    assert parse_prompt_override('["check {agentId}", 2, {"k": 1}]') == ["check {agentId}", "2", '{"k": 1}']
    assert parse_prompt_override("first | second || third ") == ["first", "second", "third"]
    assert parse_prompt_override("just one prompt") == ["just one prompt"]
    assert parse_prompt_override("[not json") == ["[not json"]


def test_environment_override_wins(settings) -> None:
    save_config(settings.project_config_file, ConfigFile(followUpPrompts=["local"]))
    env_settings = settings.model_copy(update={"followup_prompts": "verify {agentId}|csa complete {agentId}"})

    prompts, source = resolve_follow_up_prompts("ab12cd", env_settings)

    assert source == "env"
    assert prompts == ["verify ab12cd", "csa complete ab12cd"]


def test_local_config_then_global_then_defaults(settings) -> None:
    prompts, source = resolve_follow_up_prompts("ab12cd", settings)
    assert source == "default"
    assert prompts[-1] == "to hand off your work run the following command: csa complete ab12cd"
    assert len(prompts) == len(DEFAULT_FOLLOW_UP_PROMPTS)

    save_config(settings.global_config_file, ConfigFile(followUpPrompts=["global {agentId}"]))
    assert resolve_follow_up_prompts("ab12cd", settings) == (["global ab12cd"], "global")

    settings.project_config_file.parent.mkdir(parents=True, exist_ok=True)
    settings.project_config_file.write_text(json.dumps({"followUpPrompts": "not a list"}), encoding="utf-8")
    assert resolve_follow_up_prompts("ab12cd", settings)[1] == "global"

    save_config(settings.project_config_file, ConfigFile(followUpPrompts=[]))
    assert resolve_follow_up_prompts("ab12cd", settings) == ([], "local")

    active = active_config(settings.project_config_file, settings.global_config_file)
    assert active.path == settings.project_config_file


def test_build_prompt_url_encodes_like_uri_components() -> None:
    url = build_prompt_url("https://cursor.com/link/prompt", "fix a+b / c? (now)! é")

    assert url == "https://cursor.com/link/prompt?text=fix%20a%2Bb%20%2F%20c%3F%20(now)!%20%C3%A9"


def test_task_prompts() -> None:
    job = Job(
        id="job",
        goal="Refactor",
        tasks=[
            Task(name="Read", type="research", files=[], prompt="read the code"),
            Task(name="Write", type="implement", files=["a.py", "b.py"], prompt="write it"),
        ],
    )

    assert goal_prompt("Refactor").startswith("Refactor\n\nThis is just the goal")
    overview = overview_prompt(job)
    assert overview.startswith("This job consists of 2 task(s)")
    assert "1. Read\n2. Write" in overview

    assert files_instruction(["only.py"]) == "You are expected to read only.py."
    assert kickoff_prompt(job.tasks[0]).startswith("You have the following task: read the code. Task type: research.")
    assert "You are expected to read the following files:\n1. a.py\n2. b.py" in kickoff_prompt(job.tasks[1])
    assert hand_in_prompt("ab12cd").endswith("csa complete ab12cd")
