"""Document lookup and editing operations composed from Quip client calls."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Protocol

from quip_fulfillment.domain.html_document import html_to_text, last_list_item_id
from quip_fulfillment.infrastructure.quip.client import DocumentLocation
from quip_fulfillment.infrastructure.quip.errors import (
    QUIP_CALL_ERRORS,
    QuipDecodeError,
    QuipError,
)

logger = logging.getLogger(__name__)

NO_RESULTS_MESSAGE = "No Results Found"
DOCUMENT_NOT_FOUND_MESSAGE = "Could not find that document"


class DocumentOutcome(StrEnum):
    """Outcomes returned by document service operations."""

    OK = "ok"
    NOT_FOUND = "not_found"
    TRANSPORT_ERROR = "transport_error"
    DECODE_ERROR = "decode_error"
    API_ERROR = "api_error"


_FAILURE_OUTCOMES = frozenset(
    {DocumentOutcome.TRANSPORT_ERROR, DocumentOutcome.DECODE_ERROR, DocumentOutcome.API_ERROR}
)


@dataclass(frozen=True)
class DocumentSearchResult:
    outcome: DocumentOutcome
    matches: tuple[Mapping[str, Any], ...] = ()
    message: str | None = None

    def first_thread_id(self) -> str | None:
        """Return the thread id of the first match, if any."""

        if not self.matches:
            return None
        thread = self.matches[0].get("thread")
        if isinstance(thread, Mapping) and isinstance(thread.get("id"), str):
            return thread["id"]
        return None


@dataclass(frozen=True)
class DocumentContentsResult:
    outcome: DocumentOutcome
    thread_id: str
    html: str = ""
    message: str | None = None


@dataclass(frozen=True)
class DocumentEditResult:
    outcome: DocumentOutcome
    thread_id: str | None = None
    section_id: str | None = None
    location: DocumentLocation | None = None
    response: Any = None
    message: str | None = None


@dataclass(frozen=True)
class DocumentTextResult:
    outcome: DocumentOutcome
    thread_id: str | None = None
    text: str = ""
    message: str | None = None


class QuipDocumentClientPort(Protocol):
    """Quip client operations required by the document service."""

    async def find_documents(
        self,
        *,
        query: str,
        count: int | None = None,
        only_match_titles: bool | None = None,
    ) -> Any:
        """Search threads by query."""

    async def get_thread(self, thread_id: str) -> Any | None:
        """Fetch one thread by id."""

    async def edit_document(
        self,
        *,
        thread_id: str,
        content: str,
        location: DocumentLocation | None = None,
        format: str | None = None,
        section_id: str | None = None,
    ) -> Any:
        """Edit a document thread."""


class QuipDocumentService:
    """Find Quip documents by title, read them and append content to them.

    Failures never raise: each operation returns a result whose `outcome`
    distinguishes not-found from transport, decode and API errors.
    """

    def __init__(self, *, client: QuipDocumentClientPort) -> None:
        self._client = client

    async def find_document_by_title(self, title: str) -> DocumentSearchResult:
        """Search documents whose title matches `title`."""

        try:
            found = await self._client.find_documents(query=title, only_match_titles=True)
        except QUIP_CALL_ERRORS as error:
            outcome = _failure_outcome(error)
            logger.exception("document_search_failed title=%r outcome=%s", title, outcome)
            return DocumentSearchResult(outcome=outcome, message=str(error))

        matches = _as_matches(found)
        logger.info("document_search_completed title=%r matches=%s", title, len(matches))
        if not matches:
            return DocumentSearchResult(outcome=DocumentOutcome.NOT_FOUND)
        return DocumentSearchResult(outcome=DocumentOutcome.OK, matches=matches)

    async def get_document_contents(self, thread_id: str) -> DocumentContentsResult:
        """Return the rendered HTML of a thread."""

        try:
            thread = await self._client.get_thread(thread_id)
        except QUIP_CALL_ERRORS as error:
            outcome = _failure_outcome(error)
            logger.exception("document_fetch_failed thread_id=%s outcome=%s", thread_id, outcome)
            return DocumentContentsResult(outcome=outcome, thread_id=thread_id, message=str(error))

        if not isinstance(thread, Mapping):
            logger.info("document_fetch_not_found thread_id=%s", thread_id)
            return DocumentContentsResult(outcome=DocumentOutcome.NOT_FOUND, thread_id=thread_id)
        html = thread.get("html")
        return DocumentContentsResult(
            outcome=DocumentOutcome.OK,
            thread_id=thread_id,
            html=str(html) if html is not None else "",
        )

    async def edit_document(
        self,
        thread_id: str,
        current_html: str,
        new_content: str,
    ) -> DocumentEditResult:
        """Insert `new_content` after the last list item of the document.

        A document without any list item gets the content appended at its end.
        """

        section_id = last_list_item_id(current_html)
        location = (
            DocumentLocation.AFTER_SECTION if section_id is not None else DocumentLocation.APPEND
        )
        try:
            response = await self._client.edit_document(
                thread_id=thread_id,
                content=new_content,
                location=location,
                section_id=section_id,
            )
        except QUIP_CALL_ERRORS as error:
            outcome = _failure_outcome(error)
            logger.exception("document_edit_failed thread_id=%s outcome=%s", thread_id, outcome)
            return DocumentEditResult(
                outcome=outcome,
                thread_id=thread_id,
                section_id=section_id,
                location=location,
                message=str(error),
            )

        logger.info(
            "document_edit_applied thread_id=%s location=%s section_id=%s",
            thread_id,
            location.name,
            section_id,
        )
        return DocumentEditResult(
            outcome=DocumentOutcome.OK,
            thread_id=thread_id,
            section_id=section_id,
            location=location,
            response=response,
        )

    async def find_and_edit_document(self, title: str, new_content: str) -> DocumentEditResult:
        """Append content to the first document whose title matches.

        No match and a match with empty contents both yield NOT_FOUND with
        the `No Results Found` message.
        """

        search = await self.find_document_by_title(title)
        if search.outcome is DocumentOutcome.NOT_FOUND:
            return DocumentEditResult(outcome=DocumentOutcome.NOT_FOUND, message=NO_RESULTS_MESSAGE)
        if search.outcome in _FAILURE_OUTCOMES:
            return DocumentEditResult(outcome=search.outcome, message=search.message)

        thread_id = search.first_thread_id()
        if thread_id is None:
            return DocumentEditResult(outcome=DocumentOutcome.NOT_FOUND, message=NO_RESULTS_MESSAGE)

        contents = await self.get_document_contents(thread_id)
        if contents.outcome in _FAILURE_OUTCOMES:
            return DocumentEditResult(
                outcome=contents.outcome,
                thread_id=thread_id,
                message=contents.message,
            )
        if contents.outcome is DocumentOutcome.NOT_FOUND or not contents.html:
            logger.info("document_edit_skipped_empty thread_id=%s", thread_id)
            return DocumentEditResult(
                outcome=DocumentOutcome.NOT_FOUND,
                thread_id=thread_id,
                message=NO_RESULTS_MESSAGE,
            )

        return await self.edit_document(thread_id, contents.html, new_content)

    async def get_contents_by_title(self, title: str) -> DocumentTextResult:
        """Return the plain text of the first document whose title matches."""

        search = await self.find_document_by_title(title)
        if search.outcome in _FAILURE_OUTCOMES:
            return DocumentTextResult(outcome=search.outcome, message=search.message)

        thread_id = search.first_thread_id()
        if thread_id is None:
            return DocumentTextResult(
                outcome=DocumentOutcome.NOT_FOUND,
                message=DOCUMENT_NOT_FOUND_MESSAGE,
            )

        contents = await self.get_document_contents(thread_id)
        if contents.outcome in _FAILURE_OUTCOMES:
            return DocumentTextResult(
                outcome=contents.outcome,
                thread_id=thread_id,
                message=contents.message,
            )

        text = html_to_text(contents.html)
        if not text:
            return DocumentTextResult(
                outcome=DocumentOutcome.NOT_FOUND,
                thread_id=thread_id,
                message=DOCUMENT_NOT_FOUND_MESSAGE,
            )
        return DocumentTextResult(outcome=DocumentOutcome.OK, thread_id=thread_id, text=text)


def _failure_outcome(error: BaseException) -> DocumentOutcome:
    if isinstance(error, QuipDecodeError):
        return DocumentOutcome.DECODE_ERROR
    if isinstance(error, QuipError):
        return DocumentOutcome.API_ERROR
    return DocumentOutcome.TRANSPORT_ERROR


def _as_matches(found: Any) -> tuple[Mapping[str, Any], ...]:
    if not isinstance(found, Sequence) or isinstance(found, (str, bytes)):
        return ()
    return tuple(item for item in found if isinstance(item, Mapping))
