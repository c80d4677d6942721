import asyncio
from typing import Any, Optional

import pytest
from fastapi.testclient import TestClient

from app.core.persistence import DocumentStore, FileDocumentStore, get_document_store
from app.features.recordings.migration import RecordingMigrator, get_recording_migrator
from app.features.recordings.models import RecordingRecord
from app.features.recordings.store import MetadataStore, get_metadata_store
from app.features.storage_config.models import StorageType
from app.features.storage_config.service import ConfigStore, get_config_store
from app.main import app
from app.shared.exceptions import PersistError


class MemoryDocumentStore(DocumentStore):
    """In-memory document store that can fail writes and tracks overlapping cycles."""

    backend_name = "memory"

    def __init__(self):
        self.documents: dict[str, Any] = {}
        self.fail_writes = 0
        self.write_attempts = 0
        self.delay = 0.0
        self.active = 0
        self.max_active = 0

    async def read(self, key: str) -> Optional[Any]:
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.documents.get(key)

    async def write(self, key: str, document: Any) -> None:
        self.write_attempts += 1
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.fail_writes > 0:
                self.fail_writes -= 1
                raise PersistError("read-only medium", key=key)
            self.documents[key] = document
        finally:
            self.active -= 1

    async def healthy(self) -> bool:
        return True


@pytest.fixture
def memory_store():
    return MemoryDocumentStore()


@pytest.fixture
def document_store(tmp_path):
    return FileDocumentStore(tmp_path / "data")


@pytest.fixture
def recordings_dir(tmp_path):
    return tmp_path / "recordings"


@pytest.fixture
def config_store(document_store, recordings_dir):
    return ConfigStore(document_store, default_local_path=recordings_dir)


@pytest.fixture
def metadata_store(document_store):
    return MetadataStore(document_store, backoff_base=0, backoff_jitter=0)


@pytest.fixture
def make_record():
    counter = {"n": 0}

    def factory(**overrides) -> RecordingRecord:
        counter["n"] += 1
        n = counter["n"]
        data = {
            "order_id": "ORD-1",
            "sku_id": "SKU-1",
            "date": "2024-05-01",
            "timestamp": 1714521600000 + n,
            "storage_type": StorageType.LOCAL,
            "filename": f"recording_{n}.webm",
            "mime_type": "video/webm",
        }
        data.update(overrides)
        data.setdefault(
            "path",
            f"{data['order_id']}/{data['sku_id'] or 'default'}/{data['date']}/{data['filename']}",
        )
        return RecordingRecord(**data)

    return factory


@pytest.fixture(scope="function")
def client(document_store, config_store, metadata_store):
    migrator = RecordingMigrator()

    app.dependency_overrides[get_document_store] = lambda: document_store
    app.dependency_overrides[get_config_store] = lambda: config_store
    app.dependency_overrides[get_metadata_store] = lambda: metadata_store
    app.dependency_overrides[get_recording_migrator] = lambda: migrator

    with TestClient(app) as c:
        yield c

    # Reset overrides
    app.dependency_overrides.clear()
