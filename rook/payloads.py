"""Interpreters that turn a raw request body into dispatchable data."""

from __future__ import annotations

import shlex
from typing import List

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import MalformedBody


class Repository(BaseModel):
    model_config = ConfigDict(extra="ignore")

    full_name: str


class PushEvent(BaseModel):
    """The subset of a source-control push event that hooks consume."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    reference: str = Field(alias="ref")
    commit: str = Field(alias="after")
    repository: Repository

    @property
    def repo(self) -> str:
        return self.repository.full_name

    def environment(self) -> dict[str, str]:
        """Variables handed to the launched command, one per field."""
        return {
            "GITHUB_REPO": self.repository.full_name,
            "GITHUB_COMMIT": self.commit,
            "GITHUB_REF": self.reference,
        }


def parse_push_event(body: bytes) -> PushEvent:
    """Parse a JSON push event, raising :class:`MalformedBody` on any failure."""
    try:
        return PushEvent.model_validate_json(body)
    except ValidationError as exc:
        raise MalformedBody(f"{exc.error_count()} validation error(s)") from exc


def decode_command_line(body: bytes) -> str:
    """Return the body as trimmed UTF-8 text."""
    try:
        return body.decode("utf-8").strip()
    except UnicodeDecodeError as exc:
        raise MalformedBody("body is not valid UTF-8") from exc


def split_command_line(body: bytes) -> List[str]:
    """Tokenize the body with POSIX shell quoting rules.

    ``deploy --env prod "release 1.2"`` yields
    ``["deploy", "--env", "prod", "release 1.2"]``.
    """
    text = decode_command_line(body)
    try:
        return shlex.split(text)
    except ValueError as exc:
        raise MalformedBody(str(exc)) from exc


__all__ = [
    "PushEvent",
    "Repository",
    "decode_command_line",
    "parse_push_event",
    "split_command_line",
]
