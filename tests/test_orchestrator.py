"""End-to-end task execution against mocked provider HTTP."""

import asyncio
import base64
import json
import os

import httpx

from conftest import OWNER, seed_project
from storyreel.errors import UnrecoverableInterruption
from storyreel.schemas.task import TaskCreate
from storyreel.services.storage import safe_id

CDN = "https://cdn.test"
PNG = b"\x89PNG fake image"


def request_for(kind: str, model: str, **extra) -> TaskCreate:
    data = {"type": kind, "projectId": "P", "modelId": model, "prompt": "a cat on a roof"}
    data.update(extra)
    return TaskCreate.model_validate(data)


async def wait_for_status(task_store, task_id: str, status: str, timeout: float = 3.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while loop.time() < deadline:
        task = await task_store.get(task_id)
        if task.status == status:
            return task
        await asyncio.sleep(0.01)
    raise AssertionError(f"task {task_id} never reached {status}")


class AsyncVideoGateway:
    """The ``/v1/videos`` API: queued for ``pending_polls`` reads, then done."""

    def __init__(self, pending_polls: int = 1, final: dict | None = None):
        self.pending_polls = pending_polls
        self.final = final or {"status": "completed", "video_url": f"{CDN}/clip.mp4"}
        self.calls: list[str] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.calls.append(f"{request.method} {request.url.host}{path}")
        if request.url.host == "cdn.test":
            return httpx.Response(200, content=b"MP4DATA", headers={"content-type": "video/mp4"})
        if request.method == "POST" and path == "/v1/videos":
            return httpx.Response(200, json={"id": "video_1", "status": "queued"})
        if request.method == "GET" and path.startswith("/v1/videos/"):
            polls = sum(1 for c in self.calls if c.startswith("GET gateway.test/v1/videos/"))
            if polls <= self.pending_polls:
                return httpx.Response(200, json={"status": "in_progress", "progress": 40})
            return httpx.Response(200, json=self.final)
        return httpx.Response(404, json={"error": {"message": "no route"}})


async def test_async_video_task_completes(make_services, settings):
    gateway = AsyncVideoGateway(pending_polls=2)
    services = make_services(gateway)

    task = await services.orchestrator.create_task(OWNER, request_for("video", "sora-2"))
    await services.orchestrator.wait(task.id)

    stored = await services.task_store.get(task.id)
    assert stored.status == "completed"
    assert stored.progress == 100
    assert stored.provider == "generic-async"
    assert stored.provider_task_id == "video_1"

    result = json.loads(stored.result)
    assert result["reference"] == f"data/P/task/{safe_id(task.id)}.mp4"
    assert result["mime"] == "video/mp4"
    assert result["target"] is None
    with open(os.path.join(settings.MEDIA_VOLUME, result["reference"]), "rb") as f:
        assert f.read() == b"MP4DATA"


async def test_image_task_patches_keyframe(make_services, project_store):
    await seed_project(project_store, shots=[
        {"id": "S1", "keyframes": [{"id": "K1", "type": "start", "visualPrompt": "roof"}]},
    ])

    def gemini(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/v1beta/models/gemini-2.5-flash-image:generateContent"
        assert request.headers["authorization"] == "Bearer sk-test"
        return httpx.Response(200, json={"candidates": [{"content": {"parts": [
            {"text": "here you go"},
            {"inlineData": {"mimeType": "image/png", "data": base64.b64encode(PNG).decode()}},
        ]}}]})

    services = make_services(gemini)
    task = await services.orchestrator.create_task(OWNER, request_for(
        "image", "nano", target={"type": "keyframe", "shotId": "S1", "entityId": "K1"},
    ))
    await services.orchestrator.wait(task.id)

    stored = await services.task_store.get(task.id)
    assert stored.status == "completed"
    assert json.loads(stored.result)["reference"] == "data/P/keyframe/K1.png"

    project = await project_store.load(OWNER, "P")
    keyframe = project["shots"][0]["keyframes"][0]
    assert keyframe["imageUrl"] == "/api/projects/P/media/keyframe/K1"
    assert keyframe["status"] == "completed"
    assert keyframe["visualPrompt"] == "roof"


async def test_image_references_resolved_and_prompt_wrapped(make_services, project_store, storage):
    await seed_project(project_store)
    await storage.save("P", "character", "C1", b"REF", "image/png")
    seen: dict = {}

    def gemini(request: httpx.Request) -> httpx.Response:
        seen.update(json.loads(request.content))
        return httpx.Response(200, json={"candidates": [{"content": {"parts": [
            {"inlineData": {"mimeType": "image/png", "data": base64.b64encode(PNG).decode()}},
        ]}}]})

    services = make_services(gemini)
    task = await services.orchestrator.create_task(OWNER, request_for(
        "image", "nano",
        referenceImages=["/api/projects/P/media/character/C1", "/api/projects/P/media/scene/gone"],
        aspectRatio="9:16",
    ))
    await services.orchestrator.wait(task.id)

    assert (await services.task_store.get(task.id)).status == "completed"
    parts = seen["contents"][0]["parts"]
    assert len(parts) == 2
    assert parts[1]["inlineData"] == {
        "mimeType": "image/png", "data": base64.b64encode(b"REF").decode(),
    }
    assert "CHARACTER CONSISTENCY" in parts[0]["text"]
    assert '"a cat on a roof"' in parts[0]["text"]
    assert seen["generationConfig"]["imageConfig"] == {"aspectRatio": "9:16"}


async def test_text_task_stores_text(make_services):
    def chat(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        assert body["model"] == "gpt-4o"
        assert body["response_format"] == {"type": "json_object"}
        return httpx.Response(200, json={"choices": [{"message": {"content": '{"ok": 1}'}}]})

    services = make_services(chat)
    task = await services.orchestrator.create_task(
        OWNER, request_for("chat", "gpt", responseFormat="json_object")
    )
    await services.orchestrator.wait(task.id)

    stored = await services.task_store.get(task.id)
    assert stored.status == "completed"
    assert json.loads(stored.result) == {"text": '{"ok": 1}'}


async def test_sync_video_task_downloads_clip(make_services):
    def veo(request: httpx.Request) -> httpx.Response:
        if request.url.host == "cdn.test":
            return httpx.Response(200, content=b"VEO", headers={"content-type": "video/mp4"})
        body = json.loads(request.content)
        assert body["model"] == "veo_3_1_t2v_fast_landscape"
        return httpx.Response(200, json={"choices": [{"message": {
            "content": f"Done! Watch it here: {CDN}/out/veo.mp4 (expires in 24h)",
        }}]})

    services = make_services(veo)
    task = await services.orchestrator.create_task(OWNER, request_for("video", "veo"))
    await services.orchestrator.wait(task.id)

    stored = await services.task_store.get(task.id)
    assert stored.status == "completed"
    assert stored.provider == "veo-sync"
    assert stored.provider_task_id is None


async def test_provider_reported_failure(make_services):
    gateway = AsyncVideoGateway(final={"status": "failed", "error": {"message": "content policy"}})
    services = make_services(gateway)

    task = await services.orchestrator.create_task(OWNER, request_for("video", "sora-2"))
    await services.orchestrator.wait(task.id)

    stored = await services.task_store.get(task.id)
    assert stored.status == "failed"
    assert stored.error.startswith("ProviderReportedFailure:")
    assert "content policy" in stored.error
    assert stored.result is None


async def test_missing_api_key_fails_without_calls(make_services):
    gateway = AsyncVideoGateway()
    services = make_services(gateway)

    task = await services.orchestrator.create_task(OWNER, request_for("video", "orphan"))
    await services.orchestrator.wait(task.id)

    stored = await services.task_store.get(task.id)
    assert stored.status == "failed"
    assert stored.error.startswith("ConfigurationError:")
    assert gateway.calls == []


async def test_poll_timeout_fails_task(make_services, settings):
    settings.POLL_TIMEOUT_SECONDS = 1.0
    services = make_services(AsyncVideoGateway(pending_polls=10_000))

    loop = asyncio.get_running_loop()
    started = loop.time()
    task = await services.orchestrator.create_task(OWNER, request_for("video", "sora-2"))
    await services.orchestrator.wait(task.id)

    stored = await services.task_store.get(task.id)
    assert stored.status == "failed"
    assert stored.error.startswith("PollTimeout:")
    assert loop.time() - started < 3.0


async def test_cancel_while_polling(make_services):
    gateway = AsyncVideoGateway(pending_polls=10_000)
    services = make_services(gateway)
    orchestrator = services.orchestrator

    task = await orchestrator.create_task(OWNER, request_for("video", "sora-2"))
    await wait_for_status(services.task_store, task.id, "polling")

    assert await orchestrator.cancel_task(OWNER, task.id)
    await orchestrator.wait(task.id)

    stored = await services.task_store.get(task.id)
    assert stored.status == "cancelled"
    assert stored.result is None
    assert not orchestrator.registry.is_running(task.id)
    # Already terminal
    assert not await orchestrator.cancel_task(OWNER, task.id)
    assert not await orchestrator.cancel_task("intruder", task.id)


async def test_cancelled_pending_task_never_runs(make_services, task_store):
    gateway = AsyncVideoGateway()
    task = await task_store.create(OWNER, request_for("video", "sora-2"))
    await task_store.cancel(task.id)

    services = make_services(gateway)
    services.orchestrator.dispatch(task.id)
    await services.orchestrator.wait(task.id)

    assert (await task_store.get(task.id)).status == "cancelled"
    assert gateway.calls == []


async def test_cancel_waits_for_result_being_applied(make_services, task_store):
    services = make_services(AsyncVideoGateway())
    task = await task_store.create(OWNER, request_for("video", "sora-2"))
    await task_store.mark_running(task.id, "generic-async")

    # Stands in for a finishing executor holding the project lock
    async with services.mutex.hold(OWNER, task.project_id):
        cancel = asyncio.create_task(services.orchestrator.cancel_task(OWNER, task.id))
        await asyncio.sleep(0.05)
        assert not cancel.done()
        assert await task_store.complete(task.id, json.dumps({"reference": None}))

    assert not await cancel
    assert (await task_store.get(task.id)).status == "completed"


async def test_recovery(make_services, task_store):
    pending = await task_store.create(OWNER, request_for("video", "sora-2"))

    polling = await task_store.create(OWNER, request_for("video", "sora-2"))
    await task_store.mark_running(polling.id, "generic-async")
    await task_store.attach_handle(polling.id, "generic-async", "video_1")

    interrupted = await task_store.create(OWNER, request_for("video", "veo"))
    await task_store.mark_running(interrupted.id, "veo-sync")

    gateway = AsyncVideoGateway(pending_polls=0)
    services = make_services(gateway)
    report = await services.orchestrator.recover_tasks()

    assert report.redispatched == [pending.id]
    assert report.resumed == [polling.id]
    assert report.failed == [interrupted.id]

    await services.orchestrator.registry.drain()
    assert (await task_store.get(pending.id)).status == "completed"
    resumed = await task_store.get(polling.id)
    assert resumed.status == "completed"
    failed = await task_store.get(interrupted.id)
    assert failed.status == "failed"
    assert failed.error.startswith(UnrecoverableInterruption.__name__)

    # The resumed task polled its stored handle without creating a new job
    creates = [c for c in gateway.calls if c == "POST gateway.test/v1/videos"]
    assert len(creates) == 1

    # Runs once per process
    again = await services.orchestrator.recover_tasks()
    assert again.redispatched == again.resumed == again.failed == []


async def test_listing_through_orchestrator(make_services):
    services = make_services(AsyncVideoGateway(pending_polls=10_000))
    orchestrator = services.orchestrator

    task = await orchestrator.create_task(OWNER, request_for("video", "sora-2"))
    await wait_for_status(services.task_store, task.id, "polling")

    assert [t.id for t in await orchestrator.list_active_tasks(OWNER, "P")] == [task.id]
    assert [t.id for t in await orchestrator.list_project_tasks(OWNER, "P")] == [task.id]
    assert await orchestrator.get_task("intruder", task.id) is None

    await orchestrator.shutdown()
    # Shutdown leaves the row active for the next process to recover
    assert (await services.task_store.get(task.id)).status == "polling"
