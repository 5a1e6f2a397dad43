from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from urllib.parse import parse_qs, urlsplit

import aiohttp
import pytest

from quip_fulfillment.config.settings import PRODUCTION_ENDPOINT, QA_ENDPOINT
from quip_fulfillment.infrastructure.quip.client import (
    DocumentLocation,
    FolderColor,
    QuipClient,
)
from quip_fulfillment.infrastructure.quip.encoding import FormValue, LocalBlob, RemoteBlob
from quip_fulfillment.infrastructure.quip.errors import (
    QuipClientError,
    QuipDecodeError,
    QuipWebsocketError,
)
from quip_fulfillment.infrastructure.quip.transport import QuipHttpResponse


@dataclass
class _QueuedTransport:
    responses: list[QuipHttpResponse]
    error: Exception | None = None
    calls: list[dict[str, object]] = field(default_factory=list)
    websocket_calls: list[tuple[str, str]] = field(default_factory=list)
    closed: bool = False

    async def request(
        self,
        *,
        method: str,
        url: str,
        headers: dict[str, str],
        form: Mapping[str, FormValue] | None,
        timeout_seconds: float,
    ) -> QuipHttpResponse:
        self.calls.append(
            {
                "method": method,
                "url": url,
                "headers": headers,
                "form": form,
                "timeout_seconds": timeout_seconds,
            }
        )
        if self.error is not None:
            raise self.error
        return self.responses.pop(0)

    async def connect_websocket(self, *, url: str, origin: str) -> object:
        self.websocket_calls.append((url, origin))
        return "socket"

    async def aclose(self) -> None:
        self.closed = True


def _ok(payload: object) -> QuipHttpResponse:
    return QuipHttpResponse(status_code=200, body_bytes=json.dumps(payload).encode("utf-8"))


def _client(transport: _QueuedTransport, **kwargs: object) -> QuipClient:
    options: dict[str, object] = {"access_token": "quip-token"}
    options.update(kwargs)
    return QuipClient(endpoint=PRODUCTION_ENDPOINT, transport=transport, **options)  # type: ignore[arg-type]


def _query(url: object) -> dict[str, list[str]]:
    return parse_qs(urlsplit(str(url)).query)


def test_authorization_url_contains_exact_oauth_parameters() -> None:
    client = QuipClient(
        endpoint=PRODUCTION_ENDPOINT,
        client_id="abc",
        client_secret="shh",
        transport=_QueuedTransport(responses=[]),
    )

    url = client.get_authorization_url("https://app/callback", "s1")

    parts = urlsplit(url)
    assert parts.scheme == "https"
    assert parts.hostname == "platform.quip.com"
    assert parts.port == 443
    assert parts.path == "/1/oauth/login"
    assert parse_qs(parts.query) == {
        "redirect_uri": ["https://app/callback"],
        "state": ["s1"],
        "response_type": ["code"],
        "client_id": ["abc"],
    }


def test_authorization_url_follows_configured_endpoint() -> None:
    client = QuipClient(
        endpoint=QA_ENDPOINT,
        client_id="abc",
        client_secret="shh",
        transport=_QueuedTransport(responses=[]),
    )

    url = client.get_authorization_url("https://app/callback")

    assert url.startswith("http://platform.docker.qa:10000/1/oauth/login?")
    assert "state" not in _query(url)


@pytest.mark.parametrize(
    "credentials",
    [
        {},
        {"access_token": "token", "client_id": "abc", "client_secret": "shh"},
    ],
)
def test_client_requires_exactly_one_credential_mode(credentials: dict[str, str]) -> None:
    with pytest.raises(ValueError):
        QuipClient(endpoint=PRODUCTION_ENDPOINT, **credentials)


@pytest.mark.asyncio
async def test_get_access_token_exchanges_code_without_bearer_header() -> None:
    transport = _QueuedTransport(responses=[_ok({"access_token": "new-token"})])
    client = QuipClient(
        endpoint=PRODUCTION_ENDPOINT,
        client_id="abc",
        client_secret="shh",
        transport=transport,
    )

    token = await client.get_access_token("https://app/callback", "code-1")

    assert token == {"access_token": "new-token"}
    call = transport.calls[0]
    assert call["method"] == "GET"
    assert call["headers"] == {}
    assert str(call["url"]).startswith("https://platform.quip.com:443/1/oauth/access_token?")
    assert _query(call["url"]) == {
        "redirect_uri": ["https://app/callback"],
        "code": ["code-1"],
        "grant_type": ["authorization_code"],
        "client_id": ["abc"],
        "client_secret": ["shh"],
    }


@pytest.mark.asyncio
async def test_get_requests_carry_bearer_header_and_no_form() -> None:
    transport = _QueuedTransport(responses=[_ok({"id": "user-1"})])
    client = _client(transport, timeout_seconds=12.5)

    user = await client.get_authenticated_user()

    assert user == {"id": "user-1"}
    call = transport.calls[0]
    assert call["method"] == "GET"
    assert call["url"] == "https://platform.quip.com:443/1/users/current"
    assert call["headers"] == {"Authorization": "Bearer quip-token"}
    assert call["form"] is None
    assert call["timeout_seconds"] == 12.5


@pytest.mark.asyncio
async def test_get_users_joins_ids_with_commas() -> None:
    transport = _QueuedTransport(responses=[_ok({"a": {"id": "a"}, "b": {"id": "b"}})])
    client = _client(transport)

    users = await client.get_users(["a", "b"])

    assert set(users) == {"a", "b"}
    assert _query(transport.calls[0]["url"]) == {"ids": ["a,b"]}


@pytest.mark.asyncio
async def test_get_user_projects_single_key() -> None:
    transport = _QueuedTransport(responses=[_ok({"user-1": {"id": "user-1", "name": "Ada"}})])
    client = _client(transport)

    user = await client.get_user("user-1")

    assert user == {"id": "user-1", "name": "Ada"}


@pytest.mark.asyncio
async def test_get_user_returns_none_when_id_missing_from_batch() -> None:
    transport = _QueuedTransport(responses=[_ok({"someone-else": {"id": "someone-else"}})])
    client = _client(transport)

    assert await client.get_user("user-1") is None


@pytest.mark.asyncio
async def test_get_thread_and_folder_use_batch_endpoints() -> None:
    transport = _QueuedTransport(
        responses=[_ok({"t1": {"html": "<p>x</p>"}}), _ok({})],
    )
    client = _client(transport)

    thread = await client.get_thread("t1")
    folder = await client.get_folder("f1")

    assert thread == {"html": "<p>x</p>"}
    assert folder is None
    assert str(transport.calls[0]["url"]).startswith("https://platform.quip.com:443/1/threads/?")
    assert str(transport.calls[1]["url"]).startswith("https://platform.quip.com:443/1/folders/?")


@pytest.mark.asyncio
async def test_new_folder_drops_falsy_fields_and_joins_members() -> None:
    transport = _QueuedTransport(responses=[_ok({"folder": {"id": "f1"}})])
    client = _client(transport)

    await client.new_folder(
        title="Plans",
        parent_id="",
        color=FolderColor.RED,
        member_ids=["u1", "u2"],
    )

    call = transport.calls[0]
    assert call["method"] == "POST"
    assert call["url"] == "https://platform.quip.com:443/1/folders/new"
    assert call["form"] == {"title": "Plans", "color": "1", "member_ids": "u1,u2"}


@pytest.mark.asyncio
async def test_update_folder_and_membership_endpoints() -> None:
    transport = _QueuedTransport(responses=[_ok({}), _ok({}), _ok({})])
    client = _client(transport)

    await client.update_folder(folder_id="f1", title="Renamed")
    await client.add_folder_members(folder_id="f1", member_ids=["u1"])
    await client.remove_folder_members(folder_id="f1", member_ids=["u1", "u2"])

    assert [call["url"] for call in transport.calls] == [
        "https://platform.quip.com:443/1/folders/update",
        "https://platform.quip.com:443/1/folders/add-members",
        "https://platform.quip.com:443/1/folders/remove-members",
    ]
    assert transport.calls[0]["form"] == {"folder_id": "f1", "title": "Renamed"}
    assert transport.calls[2]["form"] == {"folder_id": "f1", "member_ids": "u1,u2"}


@pytest.mark.asyncio
async def test_get_messages_builds_thread_path_and_query() -> None:
    transport = _QueuedTransport(responses=[_ok([])])
    client = _client(transport)

    await client.get_messages(thread_id="t1", count=10)

    url = str(transport.calls[0]["url"])
    assert urlsplit(url).path == "/1/messages/t1"
    assert _query(url) == {"count": ["10"]}


@pytest.mark.asyncio
async def test_new_message_encodes_parts_and_silent_flag() -> None:
    transport = _QueuedTransport(responses=[_ok({"id": "m1"})])
    client = _client(transport)

    await client.new_message(
        thread_id="t1",
        parts=[["system", "hello"]],
        attachments=["b1", "b2"],
        silent=True,
    )

    assert transport.calls[0]["form"] == {
        "thread_id": "t1",
        "parts": '[["system", "hello"]]',
        "attachments": "b1,b2",
        "silent": "1",
    }


@pytest.mark.asyncio
async def test_new_message_omits_silent_when_false() -> None:
    transport = _QueuedTransport(responses=[_ok({"id": "m1"})])
    client = _client(transport)

    await client.new_message(thread_id="t1", content="hi")

    assert transport.calls[0]["form"] == {"thread_id": "t1", "content": "hi"}


@pytest.mark.asyncio
async def test_find_documents_sends_title_only_flag() -> None:
    transport = _QueuedTransport(responses=[_ok([])])
    client = _client(transport)

    await client.find_documents(query="Weekly notes", only_match_titles=True)

    url = str(transport.calls[0]["url"])
    assert urlsplit(url).path == "/1/threads/search"
    assert _query(url) == {"query": ["Weekly notes"], "only_match_titles": ["true"]}


@pytest.mark.asyncio
async def test_edit_document_maps_location_and_section() -> None:
    transport = _QueuedTransport(responses=[_ok({"thread": {"id": "t1"}})])
    client = _client(transport)

    await client.edit_document(
        thread_id="t1",
        content="<p>new</p>",
        location=DocumentLocation.AFTER_SECTION,
        section_id="sec-9",
    )

    assert transport.calls[0]["url"] == "https://platform.quip.com:443/1/threads/edit-document"
    assert transport.calls[0]["form"] == {
        "thread_id": "t1",
        "content": "<p>new</p>",
        "location": "2",
        "section_id": "sec-9",
    }


@pytest.mark.asyncio
async def test_new_document_and_thread_membership_endpoints() -> None:
    transport = _QueuedTransport(responses=[_ok({}), _ok({}), _ok({}), _ok([])])
    client = _client(transport)

    await client.new_document(content="<h1>Hi</h1>", title="Hi", member_ids=["f1"])
    await client.add_thread_members(thread_id="t1", member_ids=["u1"])
    await client.remove_thread_members(thread_id="t1", member_ids=["u1"])
    await client.get_recent_threads(count=5)

    assert transport.calls[0]["form"] == {
        "content": "<h1>Hi</h1>",
        "title": "Hi",
        "member_ids": "f1",
    }
    assert urlsplit(str(transport.calls[1]["url"])).path == "/1/threads/add-members"
    assert urlsplit(str(transport.calls[2]["url"])).path == "/1/threads/remove-members"
    assert _query(transport.calls[3]["url"]) == {"count": ["5"]}


@pytest.mark.asyncio
async def test_blob_uploads_pass_stream_sources_to_transport() -> None:
    transport = _QueuedTransport(responses=[_ok({"id": "b1"}), _ok({"id": "b2"})])
    client = _client(transport)

    await client.add_blob_from_url(thread_id="t1", url="https://example.org/cat.png")
    await client.add_blob_from_path(thread_id="t1", path="/tmp/report.pdf")

    assert transport.calls[0]["url"] == "https://platform.quip.com:443/1/blob/t1"
    assert transport.calls[0]["form"] == {"blob": RemoteBlob(url="https://example.org/cat.png")}
    assert transport.calls[1]["form"] == {"blob": LocalBlob(path="/tmp/report.pdf")}


@pytest.mark.asyncio
async def test_non_200_json_response_raises_client_error_with_body() -> None:
    transport = _QueuedTransport(
        responses=[
            QuipHttpResponse(
                status_code=401,
                body_bytes=b'{"error_code":401,"error_description":"Invalid access token"}',
                headers={"Content-Type": "application/json"},
            )
        ]
    )
    client = _client(transport)

    with pytest.raises(QuipClientError) as exc_info:
        await client.get_authenticated_user()

    error = exc_info.value
    assert error.status_code == 401
    assert error.info == {"error_code": 401, "error_description": "Invalid access token"}
    assert error.headers == {"Content-Type": "application/json"}
    assert "Invalid access token" in str(error)


@pytest.mark.asyncio
async def test_non_json_response_raises_decode_error_referencing_path() -> None:
    transport = _QueuedTransport(
        responses=[QuipHttpResponse(status_code=200, body_bytes=b"<html>gateway</html>")]
    )
    client = _client(transport)

    with pytest.raises(QuipDecodeError) as exc_info:
        await client.get_contacts()

    assert exc_info.value.path == "users/contacts"
    assert str(exc_info.value) == "Invalid response for users/contacts: <html>gateway</html>"


@pytest.mark.asyncio
async def test_non_json_error_status_is_still_a_decode_error() -> None:
    transport = _QueuedTransport(
        responses=[QuipHttpResponse(status_code=502, body_bytes=b"Bad Gateway")]
    )
    client = _client(transport)

    with pytest.raises(QuipDecodeError):
        await client.get_contacts()


@pytest.mark.asyncio
async def test_transport_errors_propagate_unmodified() -> None:
    failure = aiohttp.ClientConnectionError("connection refused")
    transport = _QueuedTransport(responses=[], error=failure)
    client = _client(transport)

    with pytest.raises(aiohttp.ClientConnectionError) as exc_info:
        await client.get_contacts()

    assert exc_info.value is failure


@pytest.mark.asyncio
async def test_connect_websocket_uses_granted_url_origin() -> None:
    transport = _QueuedTransport(
        responses=[_ok({"url": "wss://ws.quip.com:443/socket?token=abc", "user_id": "u1"})]
    )
    client = _client(transport)

    socket = await client.connect_websocket()

    assert socket == "socket"
    assert transport.calls[0]["url"] == "https://platform.quip.com:443/1/websockets/new"
    assert transport.websocket_calls == [
        ("wss://ws.quip.com:443/socket?token=abc", "wss://ws.quip.com")
    ]


@pytest.mark.asyncio
async def test_connect_websocket_surfaces_server_error_message() -> None:
    transport = _QueuedTransport(responses=[_ok({"error": "websockets disabled"})])
    client = _client(transport)

    with pytest.raises(QuipWebsocketError, match="websockets disabled"):
        await client.connect_websocket()

    assert transport.websocket_calls == []


@pytest.mark.asyncio
async def test_connect_websocket_without_error_uses_generic_message() -> None:
    transport = _QueuedTransport(responses=[_ok({})])
    client = _client(transport)

    with pytest.raises(QuipWebsocketError, match="Request failed"):
        await client.connect_websocket()


@pytest.mark.asyncio
async def test_aclose_closes_transport() -> None:
    transport = _QueuedTransport(responses=[])
    client = _client(transport)

    await client.aclose()

    assert transport.closed is True


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [b"[]", b"null"])
async def test_single_item_getters_return_none_for_non_object_batch(body: bytes) -> None:
    transport = _QueuedTransport(
        responses=[QuipHttpResponse(status_code=200, body_bytes=body) for _ in range(3)],
    )
    client = _client(transport)

    assert await client.get_thread("t1") is None
    assert await client.get_user("u1") is None
    assert await client.get_folder("f1") is None
    assert _query(transport.calls[0]["url"]) == {"ids": ["t1"]}
