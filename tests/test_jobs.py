from __future__ import annotations

import json
from pathlib import Path

import pytest

from cursor_sub_agents.jobs import (
    DEFAULT_TASK_TYPES,
    CommandCatalog,
    IdMismatchPolicy,
    Job,
    JobLoadError,
    JobNotFoundError,
    JobRepository,
    JobValidationError,
    Scope,
    TaskTypeError,
    TaskTypeRegistry,
    split_id_mismatch,
    validate_all_tasks,
    validate_job_structure,
    validate_task_structure,
)

TASK_TYPES = {"implement": ["understand", "implement"], "research": ["research"], "empty": []}


def _write_job(directory: Path, job_id: str, payload) -> Path:
    path = directory / job_id / "job.json"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(payload if isinstance(payload, str) else json.dumps(payload), encoding="utf-8")
    return path


def _job(job_id: str, goal: str = "Ship it", **overrides) -> dict:
    payload = {
        "id": job_id,
        "goal": goal,
        "tasks": [{"name": "Build", "type": "implement", "files": ["a.py"], "prompt": "build it"}],
    }
    payload.update(overrides)
    return payload


class StaticCommands:
    def __init__(self, existing):
        self.existing = set(existing)

    def validate_commands_exist(self, names):
        return [name for name in names if name not in self.existing]


def test_job_structure_messages() -> None:
    assert validate_job_structure(None, "x") == ["Job is null or undefined"]
    assert validate_job_structure([], "x") == ["Job must be an object"]
    assert validate_job_structure({}, "x") == [
        "Job missing 'id' field",
        "Job missing 'goal' field",
        "Job missing 'tasks' field",
    ]
    assert validate_job_structure({"id": 3, "goal": ["g"], "tasks": {}}, "x") == [
        "Job 'id' field must be a string",
        "Job 'goal' field must be a string",
        "Job 'tasks' must be an array",
    ]
    assert validate_job_structure({"id": "x", "goal": "g", "tasks": []}, "x") == ["Job has no tasks"]


def test_id_mismatch_policy_moves_error_to_warnings() -> None:
    errors = validate_job_structure(_job("other"), "wanted")
    assert errors == ["Job ID mismatch: job.json has 'other' but expected 'wanted'"]

    assert split_id_mismatch(errors, IdMismatchPolicy.ERROR) == (errors, [])
    assert split_id_mismatch(errors, "warn") == ([], errors)


def test_task_structure_rules_report_first_failure() -> None:
    assert str(validate_task_structure({}, 0, TASK_TYPES)) == "Task 1 (unnamed): Task missing 'name' field"
    assert validate_task_structure({"name": "t"}, 1, TASK_TYPES).error == "Task missing 'type' field"
    assert (
        validate_task_structure({"name": "t", "type": "research", "files": "a.py"}, 0, TASK_TYPES).error
        == "Task 'files' must be an array"
    )
    assert (
        validate_task_structure({"name": "t", "type": "research", "files": []}, 0, TASK_TYPES).error
        == "Task missing 'prompt' field"
    )
    unknown = validate_task_structure(
        {"name": "t", "type": "nonexistent", "files": [], "prompt": "p"}, 2, TASK_TYPES
    )
    assert unknown.task_index == 3
    assert unknown.error == 'Task type "nonexistent" not found. Available types: implement, research, empty'


def test_non_string_task_type_is_reported_not_raised() -> None:
    listed = validate_task_structure({"name": "a", "type": ["x"], "files": [], "prompt": "p"}, 0, TASK_TYPES)
    assert str(listed) == "Task 1 (a): Task 'type' must be a string"

    errors = validate_all_tasks(
        [{"name": "b", "type": {"kind": "research"}, "files": [], "prompt": "p"}],
        TASK_TYPES,
        StaticCommands({"research"}),
    )
    assert [error.error for error in errors] == ["Task 'type' must be a string"]


def test_validate_all_tasks_collects_every_failure() -> None:
    tasks = [
        {"name": "ok", "type": "research", "files": [], "prompt": "p"},
        {"name": "bad type", "type": "nonexistent", "files": [], "prompt": "p"},
        {"name": "no commands", "type": "empty", "files": [], "prompt": "p"},
        {"name": "missing", "type": "implement", "files": [], "prompt": "p"},
    ]

    errors = validate_all_tasks(tasks, TASK_TYPES, StaticCommands({"research", "understand"}))

    assert [str(error) for error in errors] == [
        'Task 2 (bad type): Task type "nonexistent" not found. Available types: implement, research, empty',
        'Task 3 (no commands): Task type "empty" has no commands defined',
        "Task 4 (missing): Missing commands: implement",
    ]


def test_repository_prefers_project_scope(tmp_path: Path) -> None:
    global_dir, project_dir = tmp_path / "global", tmp_path / "project"
    _write_job(global_dir, "shared", _job("shared", goal="global goal"))
    _write_job(project_dir, "shared", _job("shared", goal="project goal"))
    _write_job(global_dir, "only-global", _job("only-global"))
    repository = JobRepository(global_dir, project_dir)

    assert repository.load("shared").goal == "project goal"
    assert repository.location("only-global") is Scope.GLOBAL
    entries = {entry.job_id: entry for entry in repository.list_all()}
    assert entries["shared"].scope is Scope.PROJECT and entries["shared"].overrides_global
    assert entries["only-global"].scope is Scope.GLOBAL


def test_malformed_project_job_does_not_fall_back(tmp_path: Path) -> None:
    global_dir, project_dir = tmp_path / "global", tmp_path / "project"
    _write_job(global_dir, "job", _job("job"))
    broken = _write_job(project_dir, "job", "{oops")
    repository = JobRepository(global_dir, project_dir)

    with pytest.raises(JobLoadError) as excinfo:
        repository.load("job")
    assert excinfo.value.path == broken


def test_undecodable_job_file_is_a_load_error(tmp_path: Path) -> None:
    project_dir = tmp_path / "project"
    broken = project_dir / "job" / "job.json"
    broken.parent.mkdir(parents=True)
    broken.write_bytes(b"\xff\xfe{bad")
    repository = JobRepository(tmp_path / "global", project_dir)

    with pytest.raises(JobLoadError, match="not valid UTF-8") as excinfo:
        repository.load("job")
    assert excinfo.value.path == broken


def test_missing_job_names_both_locations(tmp_path: Path) -> None:
    repository = JobRepository(tmp_path / "global", tmp_path / "project")

    with pytest.raises(JobNotFoundError, match="Job not found in project"):
        repository.load("ghost")


def test_load_applies_id_mismatch_policy(tmp_path: Path, caplog) -> None:
    repository = JobRepository(tmp_path / "global", tmp_path / "project")
    _write_job(tmp_path / "project", "wanted", _job("other"))

    with pytest.raises(JobValidationError) as excinfo:
        repository.load("wanted")
    assert excinfo.value.errors[0].startswith("Job ID mismatch")

    job = repository.load("wanted", id_mismatch="warn")
    assert job.id == "other"
    assert "Job ID mismatch" in caplog.text


def test_save_and_delete_round_trip(tmp_path: Path) -> None:
    repository = JobRepository(tmp_path / "global", tmp_path / "project")
    job = Job.model_validate(_job("new-job"))

    path = repository.save(job)

    assert path == tmp_path / "project" / "new-job" / "job.json"
    assert repository.load("new-job") == job
    assert repository.delete("new-job", Scope.PROJECT)
    assert not repository.delete("new-job", Scope.PROJECT)


def test_task_types_merge_with_project_precedence(tmp_path: Path) -> None:
    global_file, project_file = tmp_path / "global.json", tmp_path / "project.json"
    registry = TaskTypeRegistry(global_file, project_file)

    assert registry.load() == DEFAULT_TASK_TYPES
    assert json.loads(global_file.read_text(encoding="utf-8")) == DEFAULT_TASK_TYPES

    project_file.write_text(json.dumps({"research": ["dig"], "custom": ["a", "b"]}), encoding="utf-8")
    merged = registry.load()
    assert merged["research"] == ["dig"]
    assert merged["custom"] == ["a", "b"]
    assert merged["implement"] == DEFAULT_TASK_TYPES["implement"]

    entries = {entry.name: entry for entry in registry.entries()}
    assert entries["research"].scope is Scope.PROJECT and entries["research"].overrides_global
    assert entries["custom"].scope is Scope.PROJECT and not entries["custom"].overrides_global
    assert entries["fix-issue"].scope is Scope.GLOBAL


def test_corrupt_global_task_types_fall_back_to_defaults(tmp_path: Path) -> None:
    global_file = tmp_path / "global.json"
    global_file.write_text("[1, 2", encoding="utf-8")

    assert TaskTypeRegistry(global_file, tmp_path / "project.json").load() == DEFAULT_TASK_TYPES


def test_task_type_edits(tmp_path: Path) -> None:
    registry = TaskTypeRegistry(tmp_path / "global.json", tmp_path / "project.json")

    registry.add("docs", [" outline ", "", "write"])
    assert registry.load_project() == {"docs": ["outline", "write"]}
    with pytest.raises(TaskTypeError):
        registry.add("docs", ["  "])
    with pytest.raises(TaskTypeError):
        registry.add(" ", ["a"])
    assert registry.remove("docs")
    assert not registry.remove("docs")


def test_command_catalog_merges_scopes(tmp_path: Path) -> None:
    global_dir, project_dir = tmp_path / "global", tmp_path / "project"
    global_dir.mkdir()
    project_dir.mkdir()
    (global_dir / "review.md").write_text("\n# Review the change\nbody", encoding="utf-8")
    (global_dir / "plan.md").write_text("Plan it", encoding="utf-8")
    (project_dir / "review.md").write_text("## Project review", encoding="utf-8")
    (project_dir / "notes.txt").write_text("ignored", encoding="utf-8")
    catalog = CommandCatalog(global_dir, project_dir)

    assert catalog.location("review") is Scope.PROJECT
    assert catalog.location("plan") is Scope.GLOBAL
    assert catalog.validate_commands_exist(["plan", "ship", "review", "notes"]) == ["ship", "notes"]

    entries = catalog.entries()
    assert [(entry.name, entry.scope, entry.preview) for entry in entries] == [
        ("plan", Scope.GLOBAL, "Plan it"),
        ("review", Scope.PROJECT, "Project review"),
    ]
    assert entries[1].overrides_global


def test_task_type_validation_reports_missing_commands(tmp_path: Path) -> None:
    registry = TaskTypeRegistry(tmp_path / "global.json", tmp_path / "project.json")
    (tmp_path / "project.json").write_text(json.dumps({"research": ["research", "document"]}), encoding="utf-8")
    commands_dir = tmp_path / "commands"
    commands_dir.mkdir()
    for name in ("research", "document", "analyze", "identify"):
        (commands_dir / f"{name}.md").write_text(name, encoding="utf-8")

    report = registry.validate(CommandCatalog(commands_dir, tmp_path / "none"))

    assert "research" not in report
    assert "identify-issues" not in report
    assert report["fix-issue"] == ["plan-fix", "implement", "review"]
