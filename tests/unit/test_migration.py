import asyncio
import os

import pytest

from app.features.recordings.migration import (
    RecordingMigrator,
    migrate_local_recordings,
    scan_local_recordings,
)
from app.features.recordings.store import MetadataStore
from app.features.storage_config.models import StorageType
from app.shared.exceptions import PersistError


def place(root, relative, mtime, content=b"video"):
    path = root.joinpath(*relative.split("/"))
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
    os.utime(path, (mtime, mtime))
    return path


@pytest.fixture
def store(memory_store):
    return MetadataStore(memory_store, key="meta", backoff_base=0, backoff_jitter=0)


def test_scan_reads_layout(tmp_path):
    place(tmp_path, "PO-1/SKU-9/2024-05-01/a.webm", 1714521600)

    (record,) = scan_local_recordings(tmp_path)
    assert record.order_id == "PO-1"
    assert record.sku_id == "SKU-9"
    assert record.date == "2024-05-01"
    assert record.path == "PO-1/SKU-9/2024-05-01/a.webm"
    assert record.filename == "a.webm"
    assert record.timestamp == 1714521600000
    assert record.storage_type == StorageType.LOCAL
    assert record.mime_type == "video/webm"


def test_scan_skips_shallow_and_non_video_files(tmp_path):
    place(tmp_path, "PO-1/SKU-9/clip.webm", 1714521600)
    place(tmp_path, "loose.mp4", 1714521600)
    place(tmp_path, "PO-1/SKU-9/2024-05-01/photo.jpg", 1714521600)
    place(tmp_path, "PO-1/SKU-9/2024-05-01/notes.txt", 1714521600)
    place(tmp_path, "PO-1/SKU-9/2024-05-01/clip.MP4", 1714521600)

    records = scan_local_recordings(tmp_path)
    assert [r.filename for r in records] == ["clip.MP4"]
    assert records[0].mime_type == "video/mp4"


def test_scan_missing_root(tmp_path):
    assert scan_local_recordings(tmp_path / "nowhere") == []


@pytest.mark.asyncio
async def test_migrate_sorts_by_modification_time(store, tmp_path):
    place(tmp_path, "PO-1/S1/2024-05-01/old.webm", 1714521600)
    place(tmp_path, "PO-2/S1/2024-05-02/new.webm", 1714608000)
    place(tmp_path, "PO-1/default/2024-05-01/mid.mp4", 1714550000)

    assert await migrate_local_recordings(store, tmp_path) == 3

    recordings = (await store.read()).recordings
    assert [r.filename for r in recordings] == ["new.webm", "mid.mp4", "old.webm"]


@pytest.mark.asyncio
async def test_migrate_is_idempotent(store, memory_store, tmp_path):
    place(tmp_path, "PO-1/S1/2024-05-01/a.webm", 1714521600)

    assert await migrate_local_recordings(store, tmp_path) == 1
    writes = memory_store.write_attempts

    assert await migrate_local_recordings(store, tmp_path) == 0
    assert memory_store.write_attempts == writes
    assert len((await store.read()).recordings) == 1


@pytest.mark.asyncio
async def test_migrate_keeps_existing_records(store, tmp_path, make_record):
    existing = make_record(timestamp=1714600000000)
    await store.add_recording(existing)
    place(tmp_path, "PO-1/S1/2024-05-01/a.webm", 1714521600)

    assert await migrate_local_recordings(store, tmp_path) == 1
    assert [r.path for r in (await store.read()).recordings] == [
        existing.path,
        "PO-1/S1/2024-05-01/a.webm",
    ]


@pytest.mark.asyncio
async def test_migrate_skips_paths_of_unparsed_records(store, memory_store, tmp_path):
    broken = {"orderId": "PO-1", "path": "PO-1/S1/2024-05-01/a.webm"}
    memory_store.documents["meta"] = {"recordings": [broken], "lastUpdated": 1}
    place(tmp_path, "PO-1/S1/2024-05-01/a.webm", 1714521600)

    assert await migrate_local_recordings(store, tmp_path) == 0
    assert memory_store.documents["meta"]["recordings"] == [broken]


@pytest.mark.asyncio
async def test_migrate_dry_run_writes_nothing(store, memory_store, tmp_path):
    place(tmp_path, "PO-1/S1/2024-05-01/a.webm", 1714521600)
    place(tmp_path, "PO-1/S1/2024-05-01/b.webm", 1714521601)

    assert await migrate_local_recordings(store, tmp_path, dry_run=True) == 2
    assert memory_store.write_attempts == 0


@pytest.mark.asyncio
async def test_migrator_runs_once(store, tmp_path):
    place(tmp_path, "PO-1/S1/2024-05-01/a.webm", 1714521600)
    migrator = RecordingMigrator()

    first = await migrator.ensure_migrated(store, tmp_path)
    assert first.ran is True
    assert first.migrated == 1
    assert migrator.done

    place(tmp_path, "PO-1/S1/2024-05-01/b.webm", 1714521601)
    second = await migrator.ensure_migrated(store, tmp_path)
    assert second.ran is False
    assert len((await store.read()).recordings) == 1


@pytest.mark.asyncio
async def test_migrator_concurrent_callers_share_one_run(store, memory_store, tmp_path):
    place(tmp_path, "PO-1/S1/2024-05-01/a.webm", 1714521600)
    migrator = RecordingMigrator()

    results = await asyncio.gather(*(migrator.ensure_migrated(store, tmp_path) for _ in range(5)))

    assert sum(1 for r in results if r.ran) == 1
    assert memory_store.write_attempts == 1


@pytest.mark.asyncio
async def test_migrator_skips_non_empty_store(store, tmp_path, make_record):
    await store.add_recording(make_record())
    place(tmp_path, "PO-1/S1/2024-05-01/a.webm", 1714521600)
    migrator = RecordingMigrator()

    result = await migrator.ensure_migrated(store, tmp_path)
    assert result.ran is True
    assert result.migrated == 0
    assert len((await store.read()).recordings) == 1


@pytest.mark.asyncio
async def test_migrator_retries_after_persist_failure(store, memory_store, tmp_path):
    place(tmp_path, "PO-1/S1/2024-05-01/a.webm", 1714521600)
    memory_store.fail_writes = 3
    migrator = RecordingMigrator()

    with pytest.raises(PersistError):
        await migrator.ensure_migrated(store, tmp_path)
    assert not migrator.done

    result = await migrator.ensure_migrated(store, tmp_path)
    assert result.migrated == 1
    assert migrator.done
