"""
Exception hierarchy for the Spikes log-analysis core.

SpikesParseError (base, a ``ValueError``)
├── MalformedCoordinate - coordinate literal with wrong arity or bad number
├── NumericParseFailure - matched line whose field is not a finite real
├── MissingField        - required key absent on a matching line / header
└── UnknownLearningType - unsupported ``learning_type`` value

A line that does not match any known event shape is not an error; the
extractors skip it.  Every error carries enough context (run, line, field)
to diagnose a malformed log without re-parsing it.
"""

from __future__ import annotations

from typing import Optional


class SpikesParseError(ValueError):
    """Base exception for malformed simulator logs.

    Attributes:
        reason: Short description of what went wrong.
        line: The offending log line, if known.
        field: The offending key or field name, if known.
        run_id: The run the line belongs to; set by the series aggregator.
    """

    def __init__(
        self,
        reason: str,
        line: Optional[str] = None,
        field: Optional[str] = None,
        run_id: Optional[int] = None,
    ) -> None:
        super().__init__(reason)
        self.reason = reason
        self.line = line
        self.field = field
        self.run_id = run_id

    def __str__(self) -> str:
        parts = [self.reason]
        if self.field is not None:
            parts.append(f"field={self.field!r}")
        if self.run_id is not None:
            parts.append(f"run={self.run_id}")
        if self.line is not None:
            parts.append(f"line={self.line.rstrip()!r}")
        return "; ".join(parts)


class MalformedCoordinate(SpikesParseError):
    """Coordinate literal could not be parsed into three real components."""

    def __init__(self, literal: str, reason: str = "malformed coordinate") -> None:
        super().__init__(f"{reason}: {literal!r}")
        self.literal = literal


class NumericParseFailure(SpikesParseError):
    """A field on a matching line is not a finite real number."""


class MissingField(SpikesParseError):
    """A required key is absent from a matching line or metadata section."""


class UnknownLearningType(SpikesParseError):
    """The ``learning_type`` header value names no supported STDP kernel."""

    def __init__(self, learning_type: str) -> None:
        super().__init__(
            f"unknown learning type {learning_type!r}", field="learning_type"
        )
        self.learning_type = learning_type
