"""Tests for the InnerTube HTTP client."""

from __future__ import annotations

import json

import httpx
import pytest

from app.services.innertube import (
    InnerTubeClient,
    InnerTubeSession,
    UpstreamError,
    generate_visitor_data,
    length_seconds_from_html,
)


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO tests to run on asyncio without requiring trio."""

    return "asyncio"


def test_visitor_data_shape() -> None:
    visitor = generate_visitor_data()

    assert visitor.startswith("Cgt")
    assert len(visitor) == 25


def test_length_seconds_from_html() -> None:
    assert length_seconds_from_html('..."lengthSeconds":"215",...') == 215
    assert length_seconds_from_html('"approxDurationMs":"185000"') == 185
    assert length_seconds_from_html("<html></html>") == 0


@pytest.mark.anyio("asyncio")
async def test_post_sends_context_and_returns_json(make_settings) -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"contents": {"ok": True}})

    settings = make_settings()
    session = InnerTubeSession("WEB", "2.20240726.00.00", "en", "US", visitor_data="CgtVISITOR")
    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
        client = InnerTubeClient(settings, http_client, session, max_retries=0)
        payload = await client.browse("UC123", "params")

    assert payload == {"contents": {"ok": True}}
    [request] = requests
    assert request.url.path.endswith("/youtubei/v1/browse")
    assert request.url.params["prettyPrint"] == "false"
    body = json.loads(request.content)
    assert body["browseId"] == "UC123"
    assert body["params"] == "params"
    assert body["context"]["client"]["visitorData"] == "CgtVISITOR"
    assert body["context"]["client"]["hl"] == "en"
    assert request.headers["X-Goog-Visitor-Id"] == "CgtVISITOR"


@pytest.mark.anyio("asyncio")
async def test_http_errors_become_upstream_errors(make_settings) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"error": "nope"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
        client = InnerTubeClient(make_settings(), http_client, max_retries=0)
        with pytest.raises(UpstreamError) as excinfo:
            await client.next("vid00000001")

    assert excinfo.value.status_code == 404


@pytest.mark.anyio("asyncio")
async def test_server_errors_are_retried(make_settings) -> None:
    attempts: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(1)
        if len(attempts) == 1:
            return httpx.Response(503)
        return httpx.Response(200, json={"ok": True})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
        client = InnerTubeClient(make_settings(), http_client, max_retries=2)
        assert await client.search("lofi") == {"ok": True}

    assert len(attempts) == 2


@pytest.mark.anyio("asyncio")
async def test_non_json_body_is_rejected(make_settings) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>captcha</html>")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
        client = InnerTubeClient(make_settings(), http_client, max_retries=0)
        with pytest.raises(UpstreamError):
            await client.player("vid00000001")


@pytest.mark.anyio("asyncio")
async def test_suggestions_return_raw_body(make_settings) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["q"] == "lofi"
        return httpx.Response(200, text='window.google.ac.h(["lofi",[]])')

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
        client = InnerTubeClient(make_settings(), http_client, max_retries=0)
        body = await client.suggestions("lofi")

    assert body.startswith("window.google.ac.h(")
