"""Bounded retry in the provider HTTP layer, directly and through a task."""

import httpx
import pytest

from conftest import OWNER
from storyreel.errors import ConfigurationError, ProviderRequestRejected, TransientProviderError
from storyreel.schemas.task import TaskCreate
from storyreel.services.providers.base import ProviderHttp, RetryPolicy, error_message


class Flaky:
    """Fails the video create call ``failures`` times, then behaves."""

    def __init__(self, failures: int, status: int = 503):
        self.failures = failures
        self.status = status
        self.creates = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.host == "cdn.test":
            return httpx.Response(200, content=b"MP4", headers={"content-type": "video/mp4"})
        if request.method == "POST":
            self.creates += 1
            if self.creates <= self.failures:
                return httpx.Response(self.status, json={"error": {"message": "overloaded"}})
            return httpx.Response(200, json={"id": "video_7"})
        return httpx.Response(
            200, json={"status": "completed", "video_url": "https://cdn.test/v.mp4"}
        )


def sora_request() -> TaskCreate:
    return TaskCreate.model_validate(
        {"type": "video", "projectId": "P", "modelId": "sora-2", "prompt": "rain"}
    )


def http_for(handler, max_retries: int = 3) -> ProviderHttp:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ProviderHttp(client, retry=RetryPolicy(max_retries=max_retries, base_delay=0))


async def test_three_transient_failures_then_success(make_services):
    flaky = Flaky(failures=3)
    services = make_services(flaky)

    task = await services.orchestrator.create_task(OWNER, sora_request())
    await services.orchestrator.wait(task.id)

    assert flaky.creates == 4
    assert (await services.task_store.get(task.id)).status == "completed"


async def test_four_transient_failures_fail_the_task(make_services):
    flaky = Flaky(failures=4)
    services = make_services(flaky)

    task = await services.orchestrator.create_task(OWNER, sora_request())
    await services.orchestrator.wait(task.id)

    stored = await services.task_store.get(task.id)
    assert flaky.creates == 4
    assert stored.status == "failed"
    assert stored.error.startswith("TransientProviderError:")
    assert "503" in stored.error


async def test_rate_limit_is_retried():
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) == 1:
            return httpx.Response(429, text="slow down")
        return httpx.Response(200, json={"ok": True})

    response = await http_for(handler).request("GET", "https://p.test/x")
    assert response.json() == {"ok": True}
    assert len(calls) == 2


async def test_connection_errors_are_retried():
    calls = []

    def handler(request):
        calls.append(request)
        raise httpx.ConnectError("connection reset", request=request)

    with pytest.raises(TransientProviderError, match="ConnectError"):
        await http_for(handler, max_retries=2).request("GET", "https://p.test/x")
    assert len(calls) == 3


@pytest.mark.parametrize("status", [401, 403])
async def test_credential_errors_are_terminal(status):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(status, json={"error": {"message": "bad key"}})

    with pytest.raises(ConfigurationError, match="bad key"):
        await http_for(handler).request("POST", "https://p.test/x")
    assert len(calls) == 1


async def test_client_errors_are_not_retried():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(400, json={"message": "prompt too long"})

    with pytest.raises(ProviderRequestRejected) as exc_info:
        await http_for(handler).request("POST", "https://p.test/x")
    assert exc_info.value.status_code == 400
    assert len(calls) == 1


async def test_retry_can_be_disabled_per_request():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(502)

    with pytest.raises(TransientProviderError):
        await http_for(handler).request("GET", "https://p.test/x", retry=False)
    assert len(calls) == 1


async def test_status_check_errors_do_not_fail_polling(make_services):
    state = {"reads": 0}

    def handler(request):
        if request.url.host == "cdn.test":
            return httpx.Response(200, content=b"MP4", headers={"content-type": "video/mp4"})
        if request.method == "POST":
            return httpx.Response(200, json={"id": "video_8"})
        state["reads"] += 1
        if state["reads"] <= 2:
            return httpx.Response(500, text="gateway hiccup")
        return httpx.Response(
            200, json={"status": "completed", "video_url": "https://cdn.test/v.mp4"}
        )

    services = make_services(handler)
    task = await services.orchestrator.create_task(OWNER, sora_request())
    await services.orchestrator.wait(task.id)

    assert (await services.task_store.get(task.id)).status == "completed"
    assert state["reads"] == 3


@pytest.mark.parametrize(
    "response, expected",
    [
        (httpx.Response(500, json={"error": {"message": "boom"}}), "boom"),
        (httpx.Response(500, json={"error": "flat"}), "flat"),
        (httpx.Response(500, json={"code": "E42"}), "E42"),
        (httpx.Response(502, text="<html>bad gateway</html>"), "<html>bad gateway</html>"),
        (httpx.Response(503, json=[1, 2]), "HTTP 503"),
    ],
)
def test_error_message(response, expected):
    assert error_message(response) == expected
