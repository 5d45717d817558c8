"""Ownership-scoped operations on a user's job applications."""
from __future__ import annotations

import logging
from typing import Dict, List, Mapping, Optional

from .database import Database
from .errors import NotFoundFailure, ValidationFailure
from .forms import JobForm, parse_form
from .models import DEFAULT_JOB_STATUS, Job

logger = logging.getLogger("jobtracker.jobs")

JOB_FIELDS = ("company", "position", "status")

SQLITE_MAX_INTEGER = 2**63 - 1


def _coerce_job_id(job_id: object) -> Optional[int]:
    try:
        value = int(str(job_id))
    except (TypeError, ValueError):
        return None
    return value if 0 < value <= SQLITE_MAX_INTEGER else None


def _submitted_fields(fields: Mapping[str, object]) -> Dict[str, object]:
    return {name: fields[name] for name in JOB_FIELDS if name in fields}


class JobController:
    """CRUD for jobs where every lookup is filtered by the owner's id.

    A job owned by somebody else is reported exactly like a job that does
    not exist.
    """

    def __init__(self, database: Database) -> None:
        self._database = database

    def list_jobs(self, owner_id: int) -> List[Job]:
        return self._database.list_jobs_for_user(owner_id)

    def new_form(self) -> Dict[str, str]:
        return {"company": "", "position": "", "status": DEFAULT_JOB_STATUS.value}

    def create(self, owner_id: int, fields: Mapping[str, object]) -> Job:
        form = parse_form(JobForm, _submitted_fields(fields))
        job = self._database.create_job(
            owner_id,
            company=form.company,
            position=form.position,
            status=form.status,
        )
        logger.info("User %s created job %s", owner_id, job.id)
        return job

    def get_for_edit(self, owner_id: int, job_id: object) -> Job:
        numeric_id = _coerce_job_id(job_id)
        job = None
        if numeric_id is not None:
            job = self._database.get_job_for_user(owner_id, numeric_id)
        if job is None:
            raise NotFoundFailure()
        return job

    def update(self, owner_id: int, job_id: object, fields: Mapping[str, object]) -> Job:
        """Validate and apply an edit in one conditional write.

        On invalid input the raised :class:`ValidationFailure` carries the
        stored values overlaid with the attempted edits.
        """

        numeric_id = _coerce_job_id(job_id)
        if numeric_id is None:
            raise NotFoundFailure()

        submitted = _submitted_fields(fields)
        try:
            form = parse_form(JobForm, submitted)
        except ValidationFailure as exc:
            current = self.get_for_edit(owner_id, numeric_id)
            merged: Dict[str, object] = dict(current.to_form())
            merged.update(submitted)
            raise ValidationFailure(exc.field_errors, values=merged) from exc

        job = self._database.update_job_for_user(
            owner_id,
            numeric_id,
            company=form.company,
            position=form.position,
            status=form.status,
        )
        if job is None:
            raise NotFoundFailure()
        logger.info("User %s updated job %s", owner_id, job.id)
        return job

    def delete(self, owner_id: int, job_id: object) -> None:
        numeric_id = _coerce_job_id(job_id)
        if numeric_id is None or not self._database.delete_job_for_user(owner_id, numeric_id):
            raise NotFoundFailure()
        logger.info("User %s deleted job %s", owner_id, numeric_id)


__all__ = ["JobController"]
