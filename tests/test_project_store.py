"""Tests for normalized project saves, loads and deletes."""

import asyncio
import base64
import os

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from conftest import OWNER
from storyreel.errors import ProjectStoreError, StorageLockContention
from storyreel.models import Character
from storyreel.schemas.project import ProjectSnapshot
from storyreel.services.project_mutex import ProjectMutex
from storyreel.services.project_store import SnapshotApply, display_media

PNG_URI = "data:image/png;base64," + base64.b64encode(b"\x89PNG character").decode()


def snapshot(**fields) -> ProjectSnapshot:
    return ProjectSnapshot.model_validate({"id": "P", "title": "Rooftops", **fields})


def script(characters=(), scenes=(), **fields) -> dict:
    return {"title": "Rooftops", "characters": list(characters), "scenes": list(scenes), **fields}


async def test_inline_media_is_written_to_storage(project_store, settings):
    await project_store.save(OWNER, snapshot(scriptData=script(
        characters=[{"id": "C", "name": "Mei", "referenceImage": PNG_URI}],
    )))

    assert await project_store.media_reference(OWNER, "P", "character", "C") == "data/P/character/C.png"
    with open(os.path.join(settings.MEDIA_VOLUME, "data/P/character/C.png"), "rb") as f:
        assert f.read() == b"\x89PNG character"

    project = await project_store.load(OWNER, "P")
    character = project["scriptData"]["characters"][0]
    assert character["referenceImage"] == "/api/projects/P/media/character/C"
    assert character["name"] == "Mei"


@pytest.mark.parametrize("incoming", [None, "/api/projects/P/media/character/C"])
async def test_omitted_media_keeps_stored_value(project_store, incoming):
    await project_store.save(OWNER, snapshot(scriptData=script(
        characters=[{"id": "C", "name": "Mei", "referenceImage": PNG_URI}],
    )))

    await project_store.save(OWNER, snapshot(scriptData=script(
        characters=[{"id": "C", "name": "Mei Lin", "referenceImage": incoming}],
    )))

    assert await project_store.media_reference(OWNER, "P", "character", "C") == "data/P/character/C.png"
    project = await project_store.load(OWNER, "P")
    assert project["scriptData"]["characters"][0]["name"] == "Mei Lin"


async def test_remote_url_replaces_stored_value(project_store):
    await project_store.save(OWNER, snapshot(scriptData=script(
        characters=[{"id": "C", "referenceImage": PNG_URI}],
    )))
    await project_store.save(OWNER, snapshot(scriptData=script(
        characters=[{"id": "C", "referenceImage": "https://cdn.test/c.png"}],
    )))

    assert await project_store.media_reference(OWNER, "P", "character", "C") == "https://cdn.test/c.png"


async def test_save_is_a_full_replace(project_store):
    await project_store.save(OWNER, snapshot(
        scriptData=script(scenes=[{"id": "S1", "location": "roof"}, {"id": "S2"}]),
        shots=[{"id": "SH1", "keyframes": [{"id": "K1"}, {"id": "K2", "type": "end"}]}],
    ))
    await project_store.save(OWNER, snapshot(
        scriptData=script(scenes=[{"id": "S1", "location": "street"}]),
        shots=[{"id": "SH1", "keyframes": [{"id": "K1"}]}],
    ))

    project = await project_store.load(OWNER, "P")
    assert [s["id"] for s in project["scriptData"]["scenes"]] == ["S1"]
    assert project["scriptData"]["scenes"][0]["location"] == "street"
    assert [k["id"] for k in project["shots"][0]["keyframes"]] == ["K1"]


async def test_child_order_is_preserved(project_store):
    await project_store.save(OWNER, snapshot(scriptData=script(
        characters=[{"id": "Z"}, {"id": "A"}, {"id": "M"}],
    )))
    project = await project_store.load(OWNER, "P")
    assert [c["id"] for c in project["scriptData"]["characters"]] == ["Z", "A", "M"]


async def test_episode_scoped_rows_survive_other_episode_saves(project_store):
    episodes = [{"id": "ep1", "name": "One"}, {"id": "ep2", "name": "Two"}]
    await project_store.save(OWNER, snapshot(
        novelEpisodes=episodes, selectedEpisodeId="ep1",
        scriptData=script(characters=[{"id": "A"}]),
    ))
    await project_store.save(OWNER, snapshot(
        novelEpisodes=episodes, selectedEpisodeId="ep2",
        scriptData=script(characters=[{"id": "B"}]),
    ))

    current = await project_store.load(OWNER, "P")
    assert [c["id"] for c in current["scriptData"]["characters"]] == ["B"]

    everything = await project_store.export(OWNER, "P")
    assert {c["id"] for c in everything["scriptData"]["characters"]} == {"A", "B"}


async def test_chapters_load_without_bodies(project_store):
    await project_store.save(OWNER, snapshot(
        novelChapters=[{"id": "ch1", "index": 1, "title": "Start", "content": "hello world"}],
        novelEpisodes=[{"id": "ep1", "name": "One", "script": "INT. ROOF"}],
    ))

    project = await project_store.load(OWNER, "P")
    assert project["novelChapters"][0]["content"] == ""
    assert project["novelChapters"][0]["wordCount"] == len("hello world")
    assert project["novelEpisodes"][0]["script"] == ""
    assert project["novelEpisodes"][0]["scriptLength"] == len("INT. ROOF")

    exported = await project_store.export(OWNER, "P")
    assert exported["novelChapters"][0]["content"] == "hello world"
    assert exported["novelEpisodes"][0]["script"] == "INT. ROOF"


async def test_save_retries_lock_contention(project_store, monkeypatch):
    real_apply = SnapshotApply.apply
    attempts = {"n": 0}

    async def flaky_apply(self, session):
        attempts["n"] += 1
        if attempts["n"] <= 3:
            raise OperationalError("INSERT", {}, Exception("database is locked"))
        await real_apply(self, session)

    monkeypatch.setattr(SnapshotApply, "apply", flaky_apply)
    await project_store.save(OWNER, snapshot(title="Saved on the fourth try"))

    assert attempts["n"] == 4
    assert (await project_store.load(OWNER, "P"))["title"] == "Saved on the fourth try"


async def test_save_gives_up_after_retry_budget(project_store, monkeypatch):
    attempts = {"n": 0}

    async def always_locked(self, session):
        attempts["n"] += 1
        raise OperationalError("INSERT", {}, Exception("Lock wait timeout exceeded"))

    monkeypatch.setattr(SnapshotApply, "apply", always_locked)
    with pytest.raises(StorageLockContention):
        await project_store.save(OWNER, snapshot())
    assert attempts["n"] == 4


async def test_other_operational_errors_are_not_retried(project_store, monkeypatch):
    attempts = {"n": 0}

    async def broken(self, session):
        attempts["n"] += 1
        raise OperationalError("INSERT", {}, Exception("no such table: shots"))

    monkeypatch.setattr(SnapshotApply, "apply", broken)
    with pytest.raises(OperationalError):
        await project_store.save(OWNER, snapshot())
    assert attempts["n"] == 1


async def test_failed_save_rolls_back_everything(project_store):
    await project_store.save(OWNER, snapshot(scriptData=script(scenes=[{"id": "S1"}])))

    with pytest.raises(IntegrityError):
        await project_store.save(OWNER, snapshot(
            title="Broken", scriptData=script(scenes=[{"id": "S9"}, {"id": "S9"}]),
        ))

    project = await project_store.load(OWNER, "P")
    assert project["title"] == "Rooftops"
    assert [s["id"] for s in project["scriptData"]["scenes"]] == ["S1"]


async def test_project_ids_are_owner_scoped(project_store):
    await project_store.save(OWNER, snapshot())
    with pytest.raises(ProjectStoreError):
        await project_store.save("someone-else", snapshot())
    assert await project_store.load("someone-else", "P") is None
    assert await project_store.exists(OWNER, "P")
    assert not await project_store.exists("someone-else", "P")


async def test_legacy_json_media_values_are_sanitized(project_store):
    await project_store.save(OWNER, snapshot(scriptData=script(characters=[{"id": "C"}])))
    legacy = '{"base64": "data:image/png;base64,AAAA", "url": "https://cdn.test/legacy.png"}'
    await project_store.update_entity(
        Character, OWNER, "P", "", "C", {"reference_image": legacy}
    )

    project = await project_store.load(OWNER, "P")
    assert project["scriptData"]["characters"][0]["referenceImage"] == "https://cdn.test/legacy.png"


def test_display_media():
    assert display_media("P", "scene", "S", None) is None
    assert display_media("P", "scene", "S", "data/P/scene/S.png") == "/api/projects/P/media/scene/S"
    assert display_media("P", "scene", "S", "https://x.test/s.png") == "https://x.test/s.png"
    assert display_media("P", "scene", "S", "data:image/png;base64,AA") == "/api/projects/P/media/scene/S"
    assert display_media("P", "scene", "S", '{"base64": "AA"}') == "/api/projects/P/media/scene/S"


async def test_list_and_delete(project_store, storage, settings):
    await project_store.save(OWNER, snapshot(scriptData=script(
        characters=[{"id": "C", "referenceImage": PNG_URI}],
    )))
    await project_store.save(OWNER, ProjectSnapshot.model_validate({"id": "Q", "title": "Other"}))

    summaries = await project_store.list_projects(OWNER)
    assert {s.id for s in summaries} == {"P", "Q"}
    assert await project_store.list_projects("someone-else") == []

    assert not await project_store.delete("someone-else", "P")
    assert await project_store.delete(OWNER, "P")
    assert await project_store.load(OWNER, "P") is None
    assert await project_store.media_reference(OWNER, "P", "character", "C") is None
    assert not os.path.exists(os.path.join(settings.MEDIA_VOLUME, "data/P"))
    assert await project_store.load(OWNER, "Q") is not None


async def test_deselecting_the_episode_round_trips(project_store):
    await project_store.save(OWNER, snapshot(
        selectedEpisodeId="ep1", scriptData=script(characters=[{"id": "C", "name": "Mei"}]),
    ))

    loaded = await project_store.load(OWNER, "P")
    loaded["selectedEpisodeId"] = None
    await project_store.save(OWNER, ProjectSnapshot.model_validate(loaded))

    reloaded = await project_store.load(OWNER, "P")
    assert [c["id"] for c in reloaded["scriptData"]["characters"]] == ["C"]

    # Saving the unscoped project again does not accumulate rows
    await project_store.save(OWNER, ProjectSnapshot.model_validate(reloaded))
    again = await project_store.load(OWNER, "P")
    assert [c["id"] for c in again["scriptData"]["characters"]] == ["C"]


async def test_unscoped_load_skips_episode_rows(project_store):
    await project_store.save(OWNER, snapshot(
        selectedEpisodeId="ep1", scriptData=script(scenes=[{"id": "S1"}]),
    ))
    await project_store.save(OWNER, snapshot(scriptData=script(scenes=[{"id": "S0"}])))

    project = await project_store.load(OWNER, "P")
    assert [s["id"] for s in project["scriptData"]["scenes"]] == ["S0"]


async def test_concurrent_saves_leave_one_whole_snapshot(project_store):
    mutex = ProjectMutex()
    first = snapshot(title="A", scriptData=script(
        characters=[{"id": "A1"}, {"id": "A2"}], scenes=[{"id": "SA"}],
    ), shots=[{"id": "SHA", "keyframes": [{"id": "KA"}]}])
    second = snapshot(title="B", scriptData=script(
        characters=[{"id": "B1"}], scenes=[{"id": "SB1"}, {"id": "SB2"}],
    ), shots=[{"id": "SHB", "keyframes": [{"id": "KB1"}, {"id": "KB2"}]}])

    def shape(project: dict) -> tuple:
        return (
            project["title"],
            [c["id"] for c in project["scriptData"]["characters"]],
            [s["id"] for s in project["scriptData"]["scenes"]],
            [(s["id"], [k["id"] for k in s["keyframes"]]) for s in project["shots"]],
        )

    expected = {
        "A": ("A", ["A1", "A2"], ["SA"], [("SHA", ["KA"])]),
        "B": ("B", ["B1"], ["SB1", "SB2"], [("SHB", ["KB1", "KB2"])]),
    }

    for _ in range(5):
        await asyncio.gather(
            mutex.run(OWNER, "P", lambda: project_store.save(OWNER, first)),
            mutex.run(OWNER, "P", lambda: project_store.save(OWNER, second)),
        )
        project = await project_store.load(OWNER, "P")
        assert shape(project) == expected[project["title"]]
