"""Tests for the file history API."""

from __future__ import annotations

from typing import TYPE_CHECKING
from unittest.mock import AsyncMock, patch

import pytest

from kotoori.exceptions import HistoryWriteError
from kotoori.services.blob_store import hash_content
from kotoori.services.history_service import HistoryService
from tests.conftest import create_test_client

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator
    from pathlib import Path

    from httpx import AsyncClient

    from kotoori.config import Settings


@pytest.fixture
async def client(test_settings: Settings) -> AsyncGenerator[AsyncClient]:
    """Create test HTTP client with app state initialized."""
    async with create_test_client(test_settings) as ac:
        yield ac


async def _save(client: AsyncClient, path: str, content: str) -> dict:  # type: ignore[type-arg]
    resp = await client.post("/api/history/snapshots", json={"path": path, "content": content})
    assert resp.status_code == 201
    return resp.json()  # type: ignore[no-any-return]


class TestSnapshots:
    @pytest.mark.asyncio
    async def test_save_and_list(self, client: AsyncClient) -> None:
        first = await _save(client, "/novels/a.txt", "a")
        assert first["recorded"] is True
        assert first["snapshot"]["change_delta"] == 1

        await _save(client, "/novels/a.txt", "ab")
        resp = await client.get("/api/history/snapshots", params={"path": "/novels/a.txt"})
        assert resp.status_code == 200
        body = resp.json()
        assert [s["char_count"] for s in body] == [2, 1]
        assert body[0]["parent_id"] == body[1]["id"]

    @pytest.mark.asyncio
    async def test_unchanged_save_is_not_recorded(self, client: AsyncClient) -> None:
        await _save(client, "/novels/a.txt", "same")
        second = await _save(client, "/novels/a.txt", "same")
        assert second == {"recorded": False, "snapshot": None}

    @pytest.mark.asyncio
    async def test_untracked_path_lists_nothing(self, client: AsyncClient) -> None:
        resp = await client.get("/api/history/snapshots", params={"path": "/nowhere.txt"})
        assert resp.status_code == 200
        assert resp.json() == []

    @pytest.mark.asyncio
    async def test_get_single_snapshot(self, client: AsyncClient) -> None:
        saved = await _save(client, "/novels/a.txt", "a")
        resp = await client.get(f"/api/history/snapshots/{saved['snapshot']['id']}")
        assert resp.status_code == 200
        assert resp.json()["content_hash"] == hash_content("a")

        missing = await client.get("/api/history/snapshots/9999")
        assert missing.status_code == 404

    @pytest.mark.asyncio
    async def test_write_failure_returns_507(self, client: AsyncClient) -> None:
        failing = AsyncMock(side_effect=HistoryWriteError("disk full"))
        with patch.object(HistoryService, "save_snapshot", failing):
            resp = await client.post(
                "/api/history/snapshots", json={"path": "/novels/a.txt", "content": "x"}
            )
        assert resp.status_code == 507
        assert resp.json()["detail"] == "History was not recorded"

    @pytest.mark.asyncio
    async def test_empty_path_rejected(self, client: AsyncClient) -> None:
        resp = await client.post("/api/history/snapshots", json={"path": "", "content": "x"})
        assert resp.status_code == 422


class TestContent:
    @pytest.mark.asyncio
    async def test_fetch_content(self, client: AsyncClient) -> None:
        saved = await _save(client, "/novels/a.txt", "本文\n")
        content_hash = saved["snapshot"]["content_hash"]
        resp = await client.get(f"/api/history/content/{content_hash}")
        assert resp.status_code == 200
        assert resp.json() == {"content_hash": content_hash, "content": "本文\n"}

    @pytest.mark.asyncio
    async def test_unknown_hash_is_404(self, client: AsyncClient) -> None:
        resp = await client.get(f"/api/history/content/{hash_content('missing')}")
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_malformed_hash_is_404(self, client: AsyncClient) -> None:
        resp = await client.get("/api/history/content/not-a-hash")
        assert resp.status_code == 404


class TestDiff:
    @pytest.mark.asyncio
    async def test_diff_between_snapshots(self, client: AsyncClient) -> None:
        old = await _save(client, "/novels/a.txt", "one\ntwo\n")
        new = await _save(client, "/novels/a.txt", "one\n2\n")
        resp = await client.get(
            "/api/history/diff",
            params={"old": old["snapshot"]["id"], "new": new["snapshot"]["id"]},
        )
        assert resp.status_code == 200
        body = resp.json()
        assert (body["added"], body["removed"]) == (1, 1)
        assert [c["kind"] for c in body["changes"]] == ["unchanged", "removed", "added"]

    @pytest.mark.asyncio
    async def test_char_granularity(self, client: AsyncClient) -> None:
        old = await _save(client, "/novels/a.txt", "cat")
        new = await _save(client, "/novels/a.txt", "cart")
        resp = await client.get(
            "/api/history/diff",
            params={
                "old": old["snapshot"]["id"],
                "new": new["snapshot"]["id"],
                "granularity": "chars",
            },
        )
        assert resp.json()["added"] == 1

    @pytest.mark.asyncio
    async def test_invalid_granularity(self, client: AsyncClient) -> None:
        resp = await client.get(
            "/api/history/diff", params={"old": 1, "new": 2, "granularity": "words"}
        )
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_missing_snapshots_degrade_to_empty(self, client: AsyncClient) -> None:
        resp = await client.get("/api/history/diff", params={"old": 100, "new": 200})
        assert resp.status_code == 200
        assert resp.json() == {"added": 0, "removed": 0, "changes": []}

    @pytest.mark.asyncio
    async def test_parent_diff(self, client: AsyncClient) -> None:
        first = await _save(client, "/novels/a.txt", "one\n")
        resp = await client.get(f"/api/history/snapshots/{first['snapshot']['id']}/diff")
        assert resp.status_code == 200
        assert resp.json()["added"] == 1

        missing = await client.get("/api/history/snapshots/9999/diff")
        assert missing.status_code == 404


class TestFiles:
    @pytest.mark.asyncio
    async def test_list_refreshes_liveness(self, client: AsyncClient, docs_dir: Path) -> None:
        alive = docs_dir / "alive.txt"
        alive.write_text("a")
        await _save(client, str(alive), "a")
        await _save(client, str(docs_dir / "gone.txt"), "b")

        resp = await client.get("/api/history/files")
        assert resp.status_code == 200
        files = {f["path"]: f for f in resp.json()}
        assert files[str(alive)]["is_alive"] is True
        assert files[str(docs_dir / "gone.txt")]["is_alive"] is False
        assert files[str(docs_dir / "gone.txt")]["lost_at"] is not None
        assert files[str(alive)]["snapshot_count"] == 1

    @pytest.mark.asyncio
    async def test_list_without_refresh(self, client: AsyncClient, docs_dir: Path) -> None:
        await _save(client, str(docs_dir / "gone.txt"), "b")
        resp = await client.get("/api/history/files", params={"refresh": "false"})
        assert resp.json()[0]["is_alive"] is True

    @pytest.mark.asyncio
    async def test_delete_history(self, client: AsyncClient) -> None:
        saved = await _save(client, "/novels/a.txt", "gone soon")
        file_id = saved["snapshot"]["file_id"]

        resp = await client.delete(f"/api/history/files/{file_id}")
        assert resp.status_code == 200
        assert resp.json() == {"id": file_id, "deleted": True}

        listed = await client.get("/api/history/snapshots", params={"path": "/novels/a.txt"})
        assert listed.json() == []
        content = await client.get(f"/api/history/content/{hash_content('gone soon')}")
        assert content.status_code == 404

    @pytest.mark.asyncio
    async def test_delete_unknown_file(self, client: AsyncClient) -> None:
        resp = await client.delete("/api/history/files/4242")
        assert resp.status_code == 404


class TestRestore:
    @pytest.mark.asyncio
    async def test_restore_to_original_path(self, client: AsyncClient, docs_dir: Path) -> None:
        path = docs_dir / "chapter.txt"
        first = await _save(client, str(path), "first draft\n")
        await _save(client, str(path), "second draft\n")
        path.write_text("second draft\n", encoding="utf-8")

        resp = await client.post(
            "/api/history/restore", json={"snapshot_id": first["snapshot"]["id"]}
        )
        assert resp.status_code == 200
        assert resp.json()["path"] == str(path)
        assert path.read_text(encoding="utf-8") == "first draft\n"

    @pytest.mark.asyncio
    async def test_restore_to_other_path_with_encoding(
        self, client: AsyncClient, docs_dir: Path
    ) -> None:
        saved = await _save(client, str(docs_dir / "a.txt"), "吾輩は猫である")
        target = docs_dir / "restored" / "a.txt"
        resp = await client.post(
            "/api/history/restore",
            json={
                "snapshot_id": saved["snapshot"]["id"],
                "target_path": str(target),
                "encoding": "SHIFT-JIS",
            },
        )
        assert resp.status_code == 200
        assert target.read_bytes() == "吾輩は猫である".encode("shift_jis")

    @pytest.mark.asyncio
    async def test_restore_unknown_snapshot(self, client: AsyncClient) -> None:
        resp = await client.post("/api/history/restore", json={"snapshot_id": 77})
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_restore_keeps_existing_encoding(
        self, client: AsyncClient, docs_dir: Path
    ) -> None:
        path = docs_dir / "old.txt"
        path.write_bytes("吾輩は猫である。名前はまだ無い。".encode("shift_jis"))
        first = await _save(client, str(path), "吾輩は猫である。")
        await _save(client, str(path), "吾輩は猫である。名前はまだ無い。")

        resp = await client.post(
            "/api/history/restore", json={"snapshot_id": first["snapshot"]["id"]}
        )
        assert resp.status_code == 200
        assert resp.json()["encoding"] == "SHIFT-JIS"
        assert path.read_bytes() == "吾輩は猫である。".encode("shift_jis")

    @pytest.mark.asyncio
    async def test_restore_to_new_file_defaults_to_utf8(
        self, client: AsyncClient, docs_dir: Path
    ) -> None:
        saved = await _save(client, str(docs_dir / "a.txt"), "本文")
        target = docs_dir / "fresh.txt"
        resp = await client.post(
            "/api/history/restore",
            json={"snapshot_id": saved["snapshot"]["id"], "target_path": str(target)},
        )
        assert resp.json()["encoding"] == "UTF-8"
        assert target.read_bytes() == "本文".encode()


class TestGarbageCollection:
    @pytest.mark.asyncio
    async def test_gc_with_nothing_orphaned(self, client: AsyncClient) -> None:
        await _save(client, "/novels/a.txt", "kept")
        resp = await client.post("/api/history/gc")
        assert resp.status_code == 200
        assert resp.json() == {"reclaimed": 0}
