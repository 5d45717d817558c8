"""Domain models for accounts and the job applications they own."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Dict


class JobStatus(str, Enum):
    """Where an application currently stands."""

    INTERVIEW = "interview"
    DECLINED = "declined"
    PENDING = "pending"

    @classmethod
    def choices(cls) -> list[str]:
        return [status.value for status in cls]


DEFAULT_JOB_STATUS = JobStatus.PENDING


@dataclass(frozen=True)
class User:
    """Represents a user account stored in the application database."""

    id: int
    name: str
    email: str
    created_at: datetime


@dataclass(frozen=True)
class Job:
    """A job application tracked by exactly one owner."""

    id: int
    user_id: int
    company: str
    position: str
    status: JobStatus
    created_at: datetime
    updated_at: datetime

    def to_form(self) -> Dict[str, str]:
        return {
            "company": self.company,
            "position": self.position,
            "status": self.status.value,
        }


__all__ = ["DEFAULT_JOB_STATUS", "Job", "JobStatus", "User"]
