"""HTTP surface: routing, owner scoping and status codes."""

import base64

import httpx
import pytest

from conftest import OWNER, registry_document
from storyreel.main import app

PNG = b"\x89PNG api"


def pending_gateway(request: httpx.Request) -> httpx.Response:
    if request.method == "POST":
        return httpx.Response(200, json={"id": "video_1", "status": "queued"})
    return httpx.Response(200, json={"status": "in_progress", "progress": 10})


@pytest.fixture()
async def client(make_services):
    app.state.services = make_services(pending_gateway)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(
        transport=transport, base_url="http://api.test", headers={"X-Owner-Id": OWNER}
    ) as c:
        yield c
    del app.state.services


def project_body(**fields) -> dict:
    return {"id": "P", "title": "Rooftops", **fields}


async def test_owner_header_is_required(client):
    response = await client.get("/api/projects", headers={"X-Owner-Id": ""})
    assert response.status_code == 401


async def test_save_load_list_delete(client):
    response = await client.put("/api/projects/P", json=project_body(
        scriptData={"characters": [{"id": "C", "name": "Mei"}]},
    ))
    assert response.status_code == 200
    assert response.json() == {"ok": True, "id": "P"}

    project = (await client.get("/api/projects/P")).json()
    assert project["scriptData"]["characters"][0]["name"] == "Mei"
    assert [p["id"] for p in (await client.get("/api/projects")).json()] == ["P"]

    other = await client.get("/api/projects/P", headers={"X-Owner-Id": "someone-else"})
    assert other.status_code == 404

    assert (await client.delete("/api/projects/P")).status_code == 200
    assert (await client.get("/api/projects/P")).status_code == 404
    assert (await client.delete("/api/projects/P")).status_code == 404


async def test_snapshot_id_must_match_url(client):
    response = await client.put("/api/projects/Q", json=project_body())
    assert response.status_code == 400


async def test_media_is_served_from_storage(client):
    uri = "data:image/png;base64," + base64.b64encode(PNG).decode()
    await client.put("/api/projects/P", json=project_body(
        scriptData={"characters": [{"id": "C", "referenceImage": uri}]},
    ))

    response = await client.get("/api/projects/P/media/character/C")
    assert response.status_code == 200
    assert response.content == PNG
    assert response.headers["content-type"] == "image/png"

    assert (await client.get("/api/projects/P/media/poster/C")).status_code == 404
    assert (await client.get("/api/projects/P/media/scene/missing")).status_code == 404
    foreign = await client.get(
        "/api/projects/P/media/character/C", headers={"X-Owner-Id": "someone-else"}
    )
    assert foreign.status_code == 404


async def test_remote_media_redirects(client):
    await client.put("/api/projects/P", json=project_body(
        scriptData={"scenes": [{"id": "S", "referenceImage": "https://cdn.test/s.png"}]},
    ))
    response = await client.get("/api/projects/P/media/scene/S")
    assert response.status_code == 302
    assert response.headers["location"] == "https://cdn.test/s.png"


async def test_remote_url_replacing_a_stored_file_redirects(client):
    uri = "data:image/png;base64," + base64.b64encode(PNG).decode()
    await client.put("/api/projects/P", json=project_body(
        scriptData={"scenes": [{"id": "S", "referenceImage": uri}]},
    ))
    assert (await client.get("/api/projects/P/media/scene/S")).content == PNG

    await client.put("/api/projects/P", json=project_body(
        scriptData={"scenes": [{"id": "S", "referenceImage": "https://cdn.test/new.png"}]},
    ))
    response = await client.get("/api/projects/P/media/scene/S")
    assert response.status_code == 302
    assert response.headers["location"] == "https://cdn.test/new.png"


async def test_task_lifecycle(client):
    await client.put("/api/projects/P", json=project_body())
    response = await client.post("/api/tasks", json={
        "type": "video", "projectId": "P", "modelId": "sora-2", "prompt": "rain",
    })
    assert response.status_code == 201
    task = response.json()
    assert task["projectId"] == "P"
    assert task["status"] == "pending"

    fetched = await client.get(f"/api/tasks/{task['id']}")
    assert fetched.status_code == 200
    active = (await client.get("/api/tasks", params={"projectId": "P"})).json()
    assert [t["id"] for t in active] == [task["id"]]

    cancelled = await client.delete(f"/api/tasks/{task['id']}")
    assert cancelled.json() == {"ok": True, "taskId": task["id"], "status": "cancelled"}
    assert (await client.delete(f"/api/tasks/{task['id']}")).status_code == 409

    history = (await client.get("/api/tasks", params={"projectId": "P", "all": "true"})).json()
    assert history[0]["status"] == "cancelled"
    assert (await client.get("/api/tasks", params={"all": "true"})).status_code == 400


async def test_unknown_task(client):
    assert (await client.get("/api/tasks/nope")).status_code == 404
    assert (await client.delete("/api/tasks/nope")).status_code == 404


async def test_task_validation(client):
    response = await client.post("/api/tasks", json={"type": "hologram", "projectId": "P",
                                                     "modelId": "x", "prompt": "p"})
    assert response.status_code == 422


async def test_model_registry_round_trip(client):
    document = registry_document()
    document["activeModels"]["video"] = "veo"
    assert (await client.put("/api/models/registry", json=document)).json() == {"ok": True}
    assert (await client.get("/api/models/registry")).json()["activeModels"]["video"] == "veo"

    empty = await client.get("/api/models/registry", headers={"X-Owner-Id": "new-user"})
    assert empty.json() == {}
