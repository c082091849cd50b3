"""Dataclasses shared across the summaries feature."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Mapping, Optional


class SummaryType(str, Enum):
    KEY_POINTS = "key-points"
    TLDR = "tldr"
    TEASER = "teaser"
    HEADLINE = "headline"


class SummaryFormat(str, Enum):
    MARKDOWN = "markdown"
    PLAIN_TEXT = "plain-text"


class SummaryLength(str, Enum):
    SHORT = "short"
    MEDIUM = "medium"
    LONG = "long"


_TYPE_ALIASES = {"tl;dr": SummaryType.TLDR}


@dataclass(frozen=True)
class SummarizationSettings:
    """Options picked by the user; snapshotted when an attempt starts."""

    type: SummaryType = SummaryType.KEY_POINTS
    format: SummaryFormat = SummaryFormat.MARKDOWN
    length: SummaryLength = SummaryLength.SHORT

    @classmethod
    def from_values(
        cls,
        type: Optional[str] = None,
        format: Optional[str] = None,
        length: Optional[str] = None,
    ) -> "SummarizationSettings":
        """Build settings from raw strings, rejecting unknown values."""
        defaults = cls()
        return cls(
            type=_coerce(SummaryType, type, defaults.type, _TYPE_ALIASES),
            format=_coerce(SummaryFormat, format, defaults.format),
            length=_coerce(SummaryLength, length, defaults.length),
        )

    @classmethod
    def from_mapping(cls, data: Mapping[str, object]) -> "SummarizationSettings":
        return cls.from_values(
            type=_optional_str(data.get("type")),
            format=_optional_str(data.get("format")),
            length=_optional_str(data.get("length")),
        )

    def to_dict(self) -> Dict[str, str]:
        return {
            "type": self.type.value,
            "format": self.format.value,
            "length": self.length.value,
        }


class OutcomeStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    SUPERSEDED = "superseded"


@dataclass(frozen=True)
class SummaryOutcome:
    """Result of one summarization attempt.

    ``notice`` is set for capability gaps (no engine, gesture required); those
    are successful outcomes with no summary text.
    """

    status: OutcomeStatus
    text: str = ""
    notice: Optional[str] = None

    @classmethod
    def success(cls, text: str) -> "SummaryOutcome":
        return cls(status=OutcomeStatus.SUCCESS, text=text)

    @classmethod
    def error(cls, message: str) -> "SummaryOutcome":
        return cls(status=OutcomeStatus.ERROR, text=message)

    @classmethod
    def capability_gap(cls, notice: str) -> "SummaryOutcome":
        return cls(status=OutcomeStatus.SUCCESS, text="", notice=notice)

    @classmethod
    def superseded(cls) -> "SummaryOutcome":
        return cls(status=OutcomeStatus.SUPERSEDED)

    @property
    def display_text(self) -> str:
        return self.notice if self.notice else self.text


def _coerce(enum_cls, value, default, aliases=None):
    if value is None:
        return default
    if isinstance(value, enum_cls):
        return value
    text = str(value).strip().lower()
    if aliases and text in aliases:
        return aliases[text]
    try:
        return enum_cls(text)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValueError(
            f"Unknown {enum_cls.__name__} value {value!r}; expected one of: {allowed}"
        ) from None


def _optional_str(value: object) -> Optional[str]:
    if value is None:
        return None
    return str(value)
