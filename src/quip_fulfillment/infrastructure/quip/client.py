"""Quip REST API adapter.

To make API calls that access Quip data, construct the client with an access
token::

    client = QuipClient(endpoint=PRODUCTION_ENDPOINT, access_token="...")
    user = await client.get_authenticated_user()

To implement OAuth login, construct it with a client id and secret instead and
redirect users to `get_authorization_url(...)`.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping, Sequence
from enum import IntEnum
from typing import Any
from urllib.parse import urlparse

import aiohttp

from quip_fulfillment.config.settings import QuipEndpoint
from quip_fulfillment.infrastructure.quip.encoding import (
    FormValue,
    LocalBlob,
    RemoteBlob,
    build_form_fields,
    build_query,
    has_blob,
)
from quip_fulfillment.infrastructure.quip.errors import (
    QuipClientError,
    QuipDecodeError,
    QuipWebsocketError,
)
from quip_fulfillment.infrastructure.quip.transport import (
    AiohttpQuipTransport,
    QuipHttpTransportPort,
)

logger = logging.getLogger(__name__)

JsonValue = Any


class FolderColor(IntEnum):
    """Folder colors accepted by `folders/new` and `folders/update`."""

    MANILA = 0
    RED = 1
    ORANGE = 2
    GREEN = 3
    BLUE = 4


class DocumentLocation(IntEnum):
    """Insertion operations accepted by `threads/edit-document`."""

    APPEND = 0
    PREPEND = 1
    AFTER_SECTION = 2
    BEFORE_SECTION = 3
    REPLACE_SECTION = 4
    DELETE_SECTION = 5


class QuipClient:
    """Async Quip API client bound to one endpoint and one credential mode."""

    def __init__(
        self,
        *,
        endpoint: QuipEndpoint,
        access_token: str | None = None,
        client_id: str | None = None,
        client_secret: str | None = None,
        transport: QuipHttpTransportPort | None = None,
        timeout_seconds: float = 30.0,
    ) -> None:
        has_token = bool(access_token)
        has_oauth_pair = bool(client_id) or bool(client_secret)
        if has_token == has_oauth_pair:
            raise ValueError(
                "provide either access_token or client_id/client_secret, not both or neither"
            )
        self._endpoint = endpoint
        self._access_token = access_token
        self._client_id = client_id
        self._client_secret = client_secret
        self._transport = transport or AiohttpQuipTransport()
        self._timeout_seconds = timeout_seconds

    @property
    def endpoint(self) -> QuipEndpoint:
        return self._endpoint

    async def aclose(self) -> None:
        """Close the underlying transport session."""

        await self._transport.aclose()

    # OAuth

    def get_authorization_url(self, redirect_uri: str, state: str | None = None) -> str:
        """Return the URL the user should be redirected to to sign in."""

        query = build_query(
            {
                "redirect_uri": redirect_uri,
                "state": state,
                "response_type": "code",
                "client_id": self._client_id,
            }
        )
        return f"{self._endpoint.api_url('oauth/login')}?{query}"

    async def get_access_token(self, redirect_uri: str, code: str) -> JsonValue:
        """Exchange a verification code for an access token.

        `redirect_uri` must be the one used to build the authorization URL
        that produced `code`.
        """

        query = build_query(
            {
                "redirect_uri": redirect_uri,
                "code": code,
                "grant_type": "authorization_code",
                "client_id": self._client_id,
                "client_secret": self._client_secret,
            }
        )
        return await self._call(f"oauth/access_token?{query}")

    # Users

    async def get_authenticated_user(self) -> JsonValue:
        return await self._call("users/current")

    async def get_user(self, user_id: str) -> JsonValue | None:
        users = await self.get_users([user_id])
        return users.get(user_id) if isinstance(users, Mapping) else None

    async def get_users(self, ids: Sequence[str]) -> dict[str, JsonValue]:
        return await self._call(f"users/?{build_query({'ids': ids})}")

    async def get_contacts(self) -> JsonValue:
        return await self._call("users/contacts")

    # Folders

    async def get_folder(self, folder_id: str) -> JsonValue | None:
        folders = await self.get_folders([folder_id])
        return folders.get(folder_id) if isinstance(folders, Mapping) else None

    async def get_folders(self, ids: Sequence[str]) -> dict[str, JsonValue]:
        return await self._call(f"folders/?{build_query({'ids': ids})}")

    async def new_folder(
        self,
        *,
        title: str,
        parent_id: str | None = None,
        color: FolderColor | None = None,
        member_ids: Sequence[str] | None = None,
    ) -> JsonValue:
        return await self._call(
            "folders/new",
            {
                "title": title,
                "parent_id": parent_id,
                "color": color,
                "member_ids": member_ids,
            },
        )

    async def update_folder(
        self,
        *,
        folder_id: str,
        title: str | None = None,
        color: FolderColor | None = None,
    ) -> JsonValue:
        return await self._call(
            "folders/update",
            {"folder_id": folder_id, "title": title, "color": color},
        )

    async def add_folder_members(self, *, folder_id: str, member_ids: Sequence[str]) -> JsonValue:
        return await self._call(
            "folders/add-members",
            {"folder_id": folder_id, "member_ids": member_ids},
        )

    async def remove_folder_members(
        self,
        *,
        folder_id: str,
        member_ids: Sequence[str],
    ) -> JsonValue:
        return await self._call(
            "folders/remove-members",
            {"folder_id": folder_id, "member_ids": member_ids},
        )

    # Messages

    async def get_messages(
        self,
        *,
        thread_id: str,
        max_updated_usec: int | None = None,
        count: int | None = None,
    ) -> JsonValue:
        query = build_query({"max_updated_usec": max_updated_usec, "count": count})
        return await self._call(f"messages/{thread_id}?{query}")

    async def new_message(
        self,
        *,
        thread_id: str,
        frame: str | None = None,
        content: str | None = None,
        parts: Sequence[Sequence[str]] | None = None,
        attachments: Sequence[str] | None = None,
        silent: bool = False,
        annotation_id: str | None = None,
        section_id: str | None = None,
    ) -> JsonValue:
        return await self._call(
            "messages/new",
            {
                "thread_id": thread_id,
                "frame": frame,
                "content": content,
                "parts": json.dumps([list(part) for part in parts]) if parts else None,
                "attachments": attachments,
                "silent": silent,
                "annotation_id": annotation_id,
                "section_id": section_id,
            },
        )

    # Threads

    async def get_thread(self, thread_id: str) -> JsonValue | None:
        threads = await self.get_threads([thread_id])
        return threads.get(thread_id) if isinstance(threads, Mapping) else None

    async def get_threads(self, ids: Sequence[str]) -> dict[str, JsonValue]:
        return await self._call(f"threads/?{build_query({'ids': ids})}")

    async def get_recent_threads(
        self,
        *,
        max_updated_usec: int | None = None,
        count: int | None = None,
    ) -> JsonValue:
        query = build_query({"max_updated_usec": max_updated_usec, "count": count})
        return await self._call(f"threads/recent?{query}")

    async def new_document(
        self,
        *,
        content: str,
        title: str | None = None,
        format: str | None = None,
        member_ids: Sequence[str] | None = None,
    ) -> JsonValue:
        return await self._call(
            "threads/new-document",
            {
                "content": content,
                "title": title,
                "format": format,
                "member_ids": member_ids,
            },
        )

    async def find_documents(
        self,
        *,
        query: str,
        count: int | None = None,
        only_match_titles: bool | None = None,
    ) -> JsonValue:
        """Search threads; each result is a mapping holding a `thread` object."""

        search_query = build_query(
            {"query": query, "count": count, "only_match_titles": only_match_titles}
        )
        return await self._call(f"threads/search?{search_query}")

    async def edit_document(
        self,
        *,
        thread_id: str,
        content: str,
        location: DocumentLocation | None = None,
        format: str | None = None,
        section_id: str | None = None,
    ) -> JsonValue:
        return await self._call(
            "threads/edit-document",
            {
                "thread_id": thread_id,
                "content": content,
                "location": location,
                "format": format,
                "section_id": section_id,
            },
        )

    async def add_thread_members(self, *, thread_id: str, member_ids: Sequence[str]) -> JsonValue:
        return await self._call(
            "threads/add-members",
            {"thread_id": thread_id, "member_ids": member_ids},
        )

    async def remove_thread_members(
        self,
        *,
        thread_id: str,
        member_ids: Sequence[str],
    ) -> JsonValue:
        return await self._call(
            "threads/remove-members",
            {"thread_id": thread_id, "member_ids": member_ids},
        )

    # Blobs

    async def add_blob_from_url(self, *, thread_id: str, url: str) -> JsonValue:
        """Stream content fetched from `url` into a new blob on the thread."""

        return await self._call(f"blob/{thread_id}", {"blob": RemoteBlob(url=url)})

    async def add_blob_from_path(self, *, thread_id: str, path: str) -> JsonValue:
        """Upload a local file as a new blob on the thread."""

        return await self._call(f"blob/{thread_id}", {"blob": LocalBlob(path=path)})

    # Websockets

    async def connect_websocket(self) -> aiohttp.ClientWebSocketResponse:
        """Request a signed websocket URL and open a connection to it."""

        granted = await self._call("websockets/new")
        url = granted.get("url") if isinstance(granted, Mapping) else None
        if not url:
            message = granted.get("error") if isinstance(granted, Mapping) else None
            raise QuipWebsocketError(message or "Request failed")
        parsed = urlparse(url)
        origin = f"{parsed.scheme}://{parsed.hostname}"
        logger.info("quip_websocket_connect host=%s", parsed.hostname)
        return await self._transport.connect_websocket(url=url, origin=origin)

    async def _call(self, path: str, form: Mapping[str, object] | None = None) -> JsonValue:
        headers: dict[str, str] = {}
        if self._access_token:
            headers["Authorization"] = f"Bearer {self._access_token}"

        encoded_form: dict[str, FormValue] | None = None
        method = "GET"
        if form is not None:
            encoded_form = build_form_fields(form)
            method = "POST"

        logger.debug(
            "quip_call method=%s path=%s fields=%s multipart=%s",
            method,
            path,
            sorted(encoded_form) if encoded_form is not None else [],
            encoded_form is not None and has_blob(encoded_form),
        )
        response = await self._transport.request(
            method=method,
            url=self._endpoint.api_url(path),
            headers=headers,
            form=encoded_form,
            timeout_seconds=self._timeout_seconds,
        )

        body_text = response.body_bytes.decode("utf-8", errors="replace")
        try:
            decoded = json.loads(body_text)
        except json.JSONDecodeError as error:
            raise QuipDecodeError(path=path, body=body_text) from error

        if response.status_code != 200:
            logger.warning("quip_call_failed path=%s status=%s", path, response.status_code)
            raise QuipClientError(
                path=path,
                status_code=response.status_code,
                headers=response.headers,
                info=decoded,
            )
        return decoded
