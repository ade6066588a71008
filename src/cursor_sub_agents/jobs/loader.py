"""Job repository resolving ``<jobs dir>/<id>/job.json`` in project then global scope."""

from __future__ import annotations

import json
import logging
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from ..storage.atomic import write_json_atomic
from .models import Job, Scope
from .validation import IdMismatchPolicy, TaskValidationError, split_id_mismatch, validate_job_structure

logger = logging.getLogger(__name__)

JOB_FILENAME = "job.json"


class JobError(RuntimeError):
    """Base class for job repository errors."""


class JobNotFoundError(JobError):
    """Raised when no scope holds a job with the requested id."""


class JobLoadError(JobError):
    """Raised when a job file exists but cannot be read or parsed."""

    def __init__(self, message: str, *, path: Path) -> None:
        super().__init__(message)
        self.path = path


class JobValidationError(JobError):
    """Raised when a job document fails structural or task validation."""

    def __init__(
        self,
        job_id: str,
        job_file: Path | None,
        errors: list[str],
        task_errors: list[TaskValidationError] | None = None,
    ) -> None:
        self.job_id = job_id
        self.job_file = job_file
        self.errors = list(errors)
        self.task_errors = list(task_errors or [])
        details = self.errors + [str(error) for error in self.task_errors]
        super().__init__(f"Job validation failed: {'; '.join(details)}")


@dataclass(slots=True)
class RawJob:
    data: Any
    path: Path
    scope: Scope


@dataclass(slots=True, frozen=True)
class JobEntry:
    job_id: str
    scope: Scope
    path: Path
    overrides_global: bool = False


class JobRepository:
    """Load, list and save job definitions across the two scopes."""

    def __init__(self, global_dir: Path, project_dir: Path) -> None:
        self._dirs = {Scope.GLOBAL: Path(global_dir), Scope.PROJECT: Path(project_dir)}

    def job_file(self, job_id: str, scope: Scope) -> Path:
        return self._dirs[scope] / job_id / JOB_FILENAME

    def location(self, job_id: str) -> Scope | None:
        for scope in (Scope.PROJECT, Scope.GLOBAL):
            if self.job_file(job_id, scope).is_file():
                return scope
        return None

    def load_raw(self, job_id: str) -> RawJob:
        """Parse the job file without validating it.

        A project file that exists but cannot be parsed is an error; it does
        not fall back to a global job of the same id.
        """

        for scope in (Scope.PROJECT, Scope.GLOBAL):
            path = self.job_file(job_id, scope)
            try:
                content = path.read_text(encoding="utf-8")
            except FileNotFoundError:
                continue
            except OSError as exc:
                raise JobLoadError(f"Failed to read job {job_id} from {path}: {exc}", path=path) from exc
            except UnicodeDecodeError as exc:
                raise JobLoadError(f"Job file {path} is not valid UTF-8: {exc}", path=path) from exc
            try:
                data = json.loads(content)
            except json.JSONDecodeError as exc:
                raise JobLoadError(f"Job file {path} is not valid JSON: {exc}", path=path) from exc
            return RawJob(data=data, path=path, scope=scope)

        raise JobNotFoundError(
            f"Failed to load job {job_id}: Job not found in project ({self._dirs[Scope.PROJECT]}) "
            f"or global ({self._dirs[Scope.GLOBAL]}) locations"
        )

    def load(
        self,
        job_id: str,
        *,
        id_mismatch: IdMismatchPolicy | str = IdMismatchPolicy.ERROR,
    ) -> Job:
        """Load and structurally validate a job, raising :class:`JobValidationError` on failure."""

        raw = self.load_raw(job_id)
        errors, warnings = split_id_mismatch(validate_job_structure(raw.data, job_id), id_mismatch)
        for warning in warnings:
            logger.warning(warning, extra={"job_id": job_id, "job_file": str(raw.path)})
        if errors:
            raise JobValidationError(job_id, raw.path, errors)

        try:
            return Job.model_validate(raw.data)
        except ValidationError as exc:
            messages = [
                f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
                for error in exc.errors()
            ]
            raise JobValidationError(job_id, raw.path, messages) from exc

    def list_ids(self, scope: Scope) -> list[str]:
        directory = self._dirs[scope]
        if not directory.is_dir():
            return []
        return sorted(
            child.name for child in directory.iterdir() if (child / JOB_FILENAME).is_file()
        )

    def list_all(self) -> list[JobEntry]:
        global_ids = set(self.list_ids(Scope.GLOBAL))
        entries = {
            job_id: JobEntry(job_id, Scope.GLOBAL, self.job_file(job_id, Scope.GLOBAL))
            for job_id in global_ids
        }
        for job_id in self.list_ids(Scope.PROJECT):
            entries[job_id] = JobEntry(
                job_id,
                Scope.PROJECT,
                self.job_file(job_id, Scope.PROJECT),
                overrides_global=job_id in global_ids,
            )
        return [entries[job_id] for job_id in sorted(entries)]

    def save(self, job: Job, scope: Scope = Scope.PROJECT) -> Path:
        path = self.job_file(job.id, scope)
        write_json_atomic(path, job.to_json_dict())
        return path

    def delete(self, job_id: str, scope: Scope) -> bool:
        job_dir = self._dirs[scope] / job_id
        if not (job_dir / JOB_FILENAME).is_file():
            return False
        shutil.rmtree(job_dir)
        return True


__all__ = [
    "JOB_FILENAME",
    "JobEntry",
    "JobError",
    "JobLoadError",
    "JobNotFoundError",
    "JobRepository",
    "JobValidationError",
    "RawJob",
]
