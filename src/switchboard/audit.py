"""Audit/metering collaborator interface.

The store behind an :class:`AuditSink` lives outside Switchboard. Reporting is
fire-and-forget: a failing sink is logged and never fails the completion.
"""

from __future__ import annotations

import asyncio
from dataclasses import asdict, dataclass
import logging
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)
audit_log = logging.getLogger("switchboard.audit")


@dataclass(frozen=True)
class AuditRecord:
    """Usage attributed to one provider call."""

    provider_tag: str
    model: str
    streaming: bool
    request_bytes: int
    response_bytes: int
    request_tokens: int
    response_tokens: int
    success: bool
    duration_s: float
    #: Phase the call ended in, e.g. ``"finalized"``, ``"transport"``, ``"cancelled"``.
    phase: str
    error: str | None = None


@runtime_checkable
class AuditSink(Protocol):
    """Duck-typed protocol for audit/metering collaborators."""

    def record(self, entry: AuditRecord) -> None: ...  # noqa: D102


class LoggingAuditSink:
    """Write audit records to the ``switchboard.audit`` logger."""

    def __init__(self, level: int = logging.INFO) -> None:
        self.level = level

    def record(self, entry: AuditRecord) -> None:
        """Log *entry* as key=value pairs."""
        fields = " ".join(f"{k}={v!r}" for k, v in asdict(entry).items())
        audit_log.log(self.level, "completion %s", fields)


def report(sink: AuditSink | None, entry: AuditRecord) -> None:
    """Hand *entry* to *sink*, swallowing (and logging) any sink failure."""
    if sink is None:
        return
    try:
        sink.record(entry)
    except asyncio.CancelledError:
        raise
    except Exception as exc:
        # Auditing must never fail the completion call.
        logger.warning(
            "Audit sink %s failed for %s: %s",
            type(sink).__name__,
            entry.provider_tag,
            exc,
        )
