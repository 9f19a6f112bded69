from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional, Union

if TYPE_CHECKING:
    from .sources import RecordSource


class CodedError(Exception):
    """Error carrying a stable machine-readable code plus structured details."""

    def __init__(self, code: str, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


class ConfigurationError(CodedError):
    """Fatal setup problem detected before any row is processed."""


class ProcessingCancelled(Exception):
    """Raised when the caller's cancellation check fires between rows."""


class Gender(str, Enum):
    WOMAN = "F"
    MAN = "M"
    INDETERMINATE = "I"
    UNKNOWN = "?"
    NOT_AVAILABLE = "-"

    @classmethod
    def from_text(cls, text: Optional[str]) -> "Gender":
        """Map dictionary gender text to a member using its first character."""
        if not text:
            return cls.UNKNOWN
        try:
            return cls(text[0].upper())
        except ValueError:
            return cls.UNKNOWN

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class DataRecord:
    first_name: Optional[str] = None
    country_code: Optional[str] = None
    gender: Gender = Gender.NOT_AVAILABLE
    accuracy: Decimal = Decimal(0)

    @property
    def is_woman(self) -> bool:
        return self.gender is Gender.WOMAN

    @property
    def is_man(self) -> bool:
        return self.gender is Gender.MAN

    @property
    def is_undetermined(self) -> bool:
        return self.gender not in (Gender.WOMAN, Gender.MAN)


NOT_FOUND = DataRecord()


@dataclass(frozen=True)
class FieldInfo:
    """Column reference by zero-based index or by header name."""

    name: Optional[str] = None
    index: Optional[int] = None

    @classmethod
    def of(cls, value: Union["FieldInfo", str, int, None]) -> "FieldInfo":
        if isinstance(value, FieldInfo):
            return value
        if value is None:
            return EMPTY_FIELD
        if isinstance(value, bool):
            raise TypeError("Column reference must be a name or an index.")
        if isinstance(value, int):
            return cls(index=value)
        return cls(name=value)

    @classmethod
    def parse(cls, text: Optional[str]) -> "FieldInfo":
        """Parse a user-facing column reference; digits are one-based column numbers."""
        if text is None or not text.strip():
            return EMPTY_FIELD
        stripped = text.strip()
        if stripped.isdigit():
            number = int(stripped)
            if number < 1:
                raise ConfigurationError("INVALID_OPTION", "Column numbers start at 1.", {"value": text})
            return cls(index=number - 1)
        return cls(name=text)

    @property
    def is_empty(self) -> bool:
        return self.index is None and not self.name

    def resolve(self, source: "RecordSource") -> Optional[int]:
        if self.index is not None:
            return self.index
        if self.name and source.has_headers and source.headers is not None:
            return source.headers.get(self.name)
        return None


EMPTY_FIELD = FieldInfo()
