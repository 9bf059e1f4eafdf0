"""Diagnostic model — non-fatal findings surfaced by a disaggregation run.

Diagnostics never change the written output. They are collected on the
pipeline result and logged when raised.
"""

from __future__ import annotations

from pydantic import Field

from landdisagg.models.common import (
    DiagnosticKind,
    DiagnosticSeverity,
    LandDisaggBase,
    UTCTimestamp,
    UUIDv7,
    new_uuid7,
    utc_now,
)


class Diagnostic(LandDisaggBase):
    """A single diagnostic raised during a pass."""

    diagnostic_id: UUIDv7 = Field(default_factory=new_uuid7)
    kind: DiagnosticKind
    severity: DiagnosticSeverity = DiagnosticSeverity.WARNING
    message: str
    pass_name: str | None = None
    detail: dict[str, object] = Field(default_factory=dict)
    created_at: UTCTimestamp = Field(default_factory=utc_now)
