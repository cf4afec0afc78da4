"""
SecureNotesClient — Notes and analyses API with transparent encryption.

Outbound text goes through ``ContentCodec.seal``; inbound text through
``ContentCodec.open``. Reads are tolerant: a note that cannot be decrypted is
returned with a placeholder and ``decryption_failed=True``. Writes are strict:
if sealing fails nothing is sent.
"""
import logging
from typing import Any, Optional

from pydantic import ValidationError as PydanticValidationError

from .conf import DECRYPTION_FAILED_TEXT
from .codec import ContentCodec
from .exceptions import DecryptionError, TransportError, ValidationError
from .models import (
    Note,
    NoteInput,
    Payload,
    PeriodAnalysis,
    parse_encoding,
    validate_date,
)

logger = logging.getLogger("daynotes.client")


class SecureNotesClient:
    """Daynotes API client bound to one session's codec."""

    def __init__(self, transport: Any, codec: ContentCodec):
        self._transport = transport
        self._codec = codec

    @property
    def codec(self) -> ContentCodec:
        return self._codec

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _open_note(self, raw: dict) -> Note:
        note = Note.model_validate(raw)
        try:
            content = self._codec.open(
                Payload(text=note.content, encoding=note.encoding)
            )
        except DecryptionError as err:
            logger.warning("Could not decrypt note id=%s: %s", note.id, err)
            return note.model_copy(
                update={"content": DECRYPTION_FAILED_TEXT, "decryption_failed": True}
            )
        return note.model_copy(update={"content": content})

    def _open_notes(self, rows: Optional[list]) -> list[Note]:
        return [self._open_note(row) for row in rows or []]

    def _open_text(self, text: Optional[str], encoding: Any = None) -> Optional[str]:
        if not text:
            return None
        return self._codec.open(
            Payload(text=text, encoding=parse_encoding(encoding))
        )

    async def _get_optional(self, path: str, params: Optional[dict] = None) -> Any:
        """GET that maps a 404 to None."""
        try:
            return await self._transport.request("GET", path, params=params)
        except TransportError as err:
            if err.status == 404:
                return None
            raise

    # ------------------------------------------------------------------
    # Notes
    # ------------------------------------------------------------------

    async def fetch_notes(self, date: str) -> list[Note]:
        """Notes written on ``date`` (YYYY-MM-DD), decrypted where needed."""
        _check_date(date)
        rows = await self._transport.request("GET", f"/api/notes/{date}")
        return self._open_notes(rows)

    async def create_note(self, content: str, date: str) -> Note:
        """Create a note; the content is sealed before it leaves the client.

        Raises:
            ValidationError: Empty or too long content, or a malformed date.
            NoActiveKeyError: Encryption is on but the session has no key.
        """
        try:
            note = NoteInput(content=content, date=date)
        except PydanticValidationError as err:
            raise ValidationError(str(err)) from err
        sealed = self._codec.seal(note.content)
        created = await self._transport.request(
            "POST",
            "/api/notes",
            data={
                "content": sealed.text,
                "date": note.date,
                "contentEncoding": sealed.encoding.value,
            },
        )
        logger.debug("Note created: date=%s", note.date)
        return self._open_note(created)

    async def delete_note(self, note_id: int) -> Any:
        return await self._transport.request("DELETE", f"/api/notes/{note_id}")

    # ------------------------------------------------------------------
    # Daily analysis
    # ------------------------------------------------------------------

    async def fetch_analysis(self, date: str) -> Optional[str]:
        """Analysis of one day, or None if there is none yet."""
        _check_date(date)
        result = await self._get_optional(f"/api/analysis/{date}")
        if not result:
            return None
        return self._open_text(
            result.get("analysis"), result.get("analysisEncoding")
        )

    async def save_analysis(self, date: str, analysis: str) -> Any:
        """Store the analysis of one day, sealed like note content.

        Raises:
            ValidationError: Missing analysis text or a malformed date.
        """
        _check_date(date)
        if not isinstance(analysis, str):
            raise ValidationError("Analysis text is required")
        sealed = self._codec.seal(analysis)
        return await self._transport.request(
            "POST",
            f"/api/analysis/{date}",
            data={"analysis": sealed.text, "analysisEncoding": sealed.encoding.value},
        )

    # ------------------------------------------------------------------
    # Period analysis
    # ------------------------------------------------------------------

    async def fetch_period_analysis(
        self,
        start_date: str,
        end_date: str,
        period_type: str,
    ) -> Optional[PeriodAnalysis]:
        """Summary over a day, week or month, or None if not generated yet."""
        params = {
            "startDate": start_date,
            "endDate": end_date,
            "periodType": period_type,
        }
        try:
            PeriodAnalysis.model_validate(params)
        except PydanticValidationError as err:
            raise ValidationError(str(err)) from err
        result = await self._get_optional("/api/period-analysis", params=params)
        if not result:
            return None
        period = PeriodAnalysis.model_validate(result)
        try:
            text = self._open_text(period.analysis, period.encoding)
        except DecryptionError as err:
            logger.warning(
                "Could not decrypt %s analysis %s..%s: %s",
                period.period_type, period.start_date, period.end_date, err,
            )
            return period.model_copy(
                update={"analysis": DECRYPTION_FAILED_TEXT, "decryption_failed": True}
            )
        return period.model_copy(update={"analysis": text})

    async def save_period_analysis(self, period: PeriodAnalysis) -> Any:
        body = period.model_dump(
            by_alias=True, mode="json", exclude={"decryption_failed"}
        )
        sealed = self._codec.seal(period.analysis)
        if sealed is not None:
            body["analysis"] = sealed.text
            body["analysisEncoding"] = sealed.encoding.value
        return await self._transport.request(
            "POST", "/api/period-analysis", data=body,
        )

    # ------------------------------------------------------------------
    # Moments
    # ------------------------------------------------------------------

    async def fetch_moments(self) -> list[Note]:
        """Notes the user marked as moments."""
        rows = await self._transport.request("GET", "/api/moments")
        return self._open_notes(rows)

    async def fetch_moments_analysis(self) -> Optional[str]:
        result = await self._get_optional("/api/moments/analysis")
        if not result:
            return None
        return self._open_text(
            result.get("analysis"), result.get("analysisEncoding")
        )

    async def toggle_moment(self, note_id: int) -> Any:
        return await self._transport.request(
            "POST", f"/api/notes/{note_id}/toggle-moment"
        )

    async def generate_moments_analysis(self) -> Any:
        return await self._transport.request("POST", "/api/moments/analyze")


def _check_date(date: str) -> None:
    try:
        validate_date(date)
    except ValueError as err:
        raise ValidationError(str(err)) from err
