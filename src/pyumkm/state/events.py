"""Normalized change notifications.

Every push transport converts its payloads into :class:`ChangeEvent`.
Only the listener consumes them.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class ChangeKind(StrEnum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


class ChangeEvent(BaseModel):
    """A committed backend change for the current user."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    event: ChangeKind
    table: str = Field(..., description="Backend table the change touched")
    record_id: str | None = Field(default=None, validation_alias=AliasChoices("record_id", "recordId", "id"))
    observed_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    raw: dict[str, Any] = Field(default_factory=dict, description="Original payload (as received)")

    @field_validator("event", mode="before")
    @classmethod
    def _normalize_event(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("table")
    @classmethod
    def _normalize_table(cls, value: str) -> str:
        table = value.strip()
        if not table:
            raise ValueError("table must be non-empty")
        return table

    @field_validator("record_id", mode="before")
    @classmethod
    def _coerce_record_id(cls, value: Any) -> str | None:
        if value is None or value == "":
            return None
        return str(value)
