"""Data models for authenticated callers."""

from dataclasses import dataclass
from enum import StrEnum


class Role(StrEnum):
    """Role of an authenticated user."""

    STUDENT = "student"
    TEACHER = "teacher"
    ADMIN = "admin"


@dataclass(frozen=True)
class Principal:
    """The caller as resolved by the auth layer."""

    id: str
    role: Role
    name: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN
