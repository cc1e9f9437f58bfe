from __future__ import annotations

import re

import httpx
import pytest
from pytest_httpx import HTTPXMock

from ingest_core.errors import (
    FetchError,
    HttpStatusError,
    RetryableStatusError,
    TransientError,
)
from ingest_core.fetch import fetch_json, fetch_with_retry, is_retryable_status
from tests.ingest_core.support.fakes import FakeClock, FakeLogger

pytestmark = pytest.mark.asyncio

URL = "https://api.example.test/items"


@pytest.mark.parametrize(
    ("status", "expected"),
    [
        (200, False),
        (301, False),
        (400, False),
        (404, False),
        (429, True),
        (500, True),
        (503, True),
        (599, True),
    ],
)
async def test_is_retryable_status(status: int, expected: bool) -> None:
    assert is_retryable_status(status) is expected


async def test_retries_rate_limit_with_doubling_delays(
    httpx_mock: HTTPXMock,
    http_client: httpx.AsyncClient,
    fake_clock: FakeClock,
    fake_logger: FakeLogger,
) -> None:
    httpx_mock.add_response(url=URL, status_code=429)
    httpx_mock.add_response(url=URL, status_code=429)
    httpx_mock.add_response(url=URL, json={"ok": True})

    response = await fetch_with_retry(
        http_client,
        URL,
        clock=fake_clock,
        logger=fake_logger,
    )

    assert response.json() == {"ok": True}
    assert len(httpx_mock.get_requests()) == 3
    assert fake_clock.sleeps == [1.0, 2.0]
    retries = fake_logger.find("fetch_retry_scheduled")
    assert [fields["attempt"] for fields in retries] == [1, 2]
    assert [fields["delay_seconds"] for fields in retries] == [1.0, 2.0]
    assert retries[0]["http_status"] == 429
    assert fake_logger.levels("fetch_retry_scheduled") == ["warning", "warning"]


async def test_server_errors_exhaust_attempts_and_raise_last_error(
    httpx_mock: HTTPXMock,
    http_client: httpx.AsyncClient,
    fake_clock: FakeClock,
) -> None:
    for _ in range(4):
        httpx_mock.add_response(url=URL, status_code=503, text="busy")

    with pytest.raises(RetryableStatusError) as excinfo:
        await fetch_with_retry(http_client, URL, max_attempts=4, clock=fake_clock)

    assert isinstance(excinfo.value, TransientError)
    assert excinfo.value.http_status == 503
    assert excinfo.value.response_body == "busy"
    assert excinfo.value.url == URL
    assert fake_clock.sleeps == [1.0, 2.0, 4.0]


@pytest.mark.parametrize("status", [400, 401, 403, 404, 302])
async def test_non_retryable_status_fails_without_retry(
    httpx_mock: HTTPXMock,
    http_client: httpx.AsyncClient,
    fake_clock: FakeClock,
    status: int,
) -> None:
    httpx_mock.add_response(url=URL, status_code=status, text="nope")

    with pytest.raises(HttpStatusError) as excinfo:
        await fetch_with_retry(http_client, URL, clock=fake_clock)

    assert excinfo.value.http_status == status
    assert len(httpx_mock.get_requests()) == 1
    assert fake_clock.sleeps == []


async def test_transport_error_is_retried_then_succeeds(
    httpx_mock: HTTPXMock,
    http_client: httpx.AsyncClient,
    fake_clock: FakeClock,
) -> None:
    httpx_mock.add_exception(httpx.ConnectError("refused"), url=URL)
    httpx_mock.add_response(url=URL, json=[1, 2])

    response = await fetch_with_retry(http_client, URL, clock=fake_clock)

    assert response.json() == [1, 2]
    assert fake_clock.sleeps == [1.0]


async def test_transport_error_propagates_after_last_attempt(
    httpx_mock: HTTPXMock,
    http_client: httpx.AsyncClient,
    fake_clock: FakeClock,
) -> None:
    httpx_mock.add_exception(httpx.ReadTimeout("slow"), url=URL)
    httpx_mock.add_exception(httpx.ReadTimeout("slow"), url=URL)

    with pytest.raises(httpx.ReadTimeout):
        await fetch_with_retry(http_client, URL, max_attempts=2, clock=fake_clock)

    assert fake_clock.sleeps == [1.0]


async def test_single_attempt_never_sleeps(
    httpx_mock: HTTPXMock,
    http_client: httpx.AsyncClient,
    fake_clock: FakeClock,
) -> None:
    httpx_mock.add_response(url=URL, status_code=500)

    with pytest.raises(RetryableStatusError):
        await fetch_with_retry(http_client, URL, max_attempts=1, clock=fake_clock)

    assert fake_clock.sleeps == []


async def test_rejects_zero_attempts(http_client: httpx.AsyncClient) -> None:
    with pytest.raises(ValueError, match="max_attempts must be >= 1"):
        await fetch_with_retry(http_client, URL, max_attempts=0)


async def test_sends_params_and_json_accept_header(
    httpx_mock: HTTPXMock,
    http_client: httpx.AsyncClient,
) -> None:
    httpx_mock.add_response(url=re.compile(r"https://api\.example\.test/items\?.*"))

    await fetch_with_retry(
        http_client,
        URL,
        params={"GROUP": "starlink", "page": 2},
        headers={"X-Trace": "abc"},
    )

    request = httpx_mock.get_request()
    assert request is not None
    assert request.url.params["GROUP"] == "starlink"
    assert request.url.params["page"] == "2"
    assert request.headers["Accept"] == "application/json"
    assert request.headers["X-Trace"] == "abc"


async def test_fetch_json_decodes_body(
    httpx_mock: HTTPXMock,
    http_client: httpx.AsyncClient,
) -> None:
    httpx_mock.add_response(url=URL, json={"message": "success"})

    assert await fetch_json(http_client, URL) == {"message": "success"}


async def test_fetch_json_rejects_invalid_json(
    httpx_mock: HTTPXMock,
    http_client: httpx.AsyncClient,
) -> None:
    httpx_mock.add_response(url=URL, text="<html>maintenance</html>")

    with pytest.raises(FetchError, match="not valid JSON") as excinfo:
        await fetch_json(http_client, URL)

    assert excinfo.value.http_status == 200
    assert excinfo.value.response_body == "<html>maintenance</html>"
