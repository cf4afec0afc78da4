"""
Daynotes records as exchanged with the server.

Text fields that may carry an envelope are paired with an explicit encoding
tag. Rows written before the tag existed arrive with ``encoding=None`` and
are classified by the structural envelope test instead.
"""
import re
from enum import Enum
from typing import Optional
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .conf import NOTE_MAX_LENGTH, PERIOD_TYPES

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class PayloadEncoding(str, Enum):
    """How a text payload is stored at rest."""

    PLAIN = "plain"
    ENVELOPE = "envelope"


class Payload(BaseModel):
    """A text field that is either plaintext or an envelope."""

    text: str
    encoding: Optional[PayloadEncoding] = None


class OpenResult(BaseModel):
    """Outcome of opening one payload in a batch."""

    text: str
    failed: bool = False
    error: Optional[str] = None


class _Record(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


def parse_encoding(value) -> Optional[PayloadEncoding]:
    """Map an encoding tag to ``PayloadEncoding``; unknown tags become None.

    An untagged payload is classified by the structural envelope test, so a
    tag written by a newer or foreign client degrades to that test.
    """
    if value is None or isinstance(value, PayloadEncoding):
        return value
    try:
        return PayloadEncoding(value)
    except ValueError:
        return None


def validate_date(value: str) -> str:
    """Accept only ``YYYY-MM-DD`` dates."""
    if not isinstance(value, str) or not _DATE_RE.match(value):
        raise ValueError("Date must be in YYYY-MM-DD format")
    datetime.strptime(value, "%Y-%m-%d")
    return value


class Note(_Record):
    """A short timestamped journal note."""

    id: Optional[int] = None
    content: str
    date: str
    timestamp: Optional[datetime] = None
    user_id: Optional[int] = Field(default=None, alias="userId")
    is_moment: bool = Field(default=False, alias="isMoment")
    encoding: Optional[PayloadEncoding] = Field(
        default=None, alias="contentEncoding"
    )
    decryption_failed: bool = False

    @field_validator("date")
    @classmethod
    def check_date(cls, v: str) -> str:
        return validate_date(v)

    @field_validator("encoding", mode="before")
    @classmethod
    def check_encoding(cls, v):
        return parse_encoding(v)


class NoteInput(_Record):
    """Content and date of a note about to be created."""

    content: str = Field(min_length=1, max_length=NOTE_MAX_LENGTH)
    date: str

    @field_validator("date")
    @classmethod
    def check_date(cls, v: str) -> str:
        return validate_date(v)


class PeriodAnalysis(_Record):
    """AI summary of the notes between two dates."""

    start_date: str = Field(alias="startDate")
    end_date: str = Field(alias="endDate")
    period_type: str = Field(alias="periodType")
    analysis: Optional[str] = None
    encoding: Optional[PayloadEncoding] = Field(
        default=None, alias="analysisEncoding"
    )
    decryption_failed: bool = False

    @field_validator("start_date", "end_date")
    @classmethod
    def check_dates(cls, v: str) -> str:
        return validate_date(v)

    @field_validator("encoding", mode="before")
    @classmethod
    def check_encoding(cls, v):
        return parse_encoding(v)

    @field_validator("period_type")
    @classmethod
    def check_period(cls, v: str) -> str:
        if v not in PERIOD_TYPES:
            raise ValueError(f"Unsupported period type: {v}")
        return v
