from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import httpx
import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from app.features.storage.adapters import (
    LocalStorageAdapter,
    StorjStorageAdapter,
    UrlStorageAdapter,
    build_object_key,
    generate_filename,
    get_file_extension,
    get_storage_adapter,
    validate_key_segment,
)
from app.features.storage_config.models import StorageConfig, StorageType
from app.shared.exceptions import (
    ConfigIncompleteError,
    LocalStorageError,
    StorjUpstreamError,
    UrlUpstreamError,
    ValidationError,
)


def fixed_clock():
    return datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


FIXED_MS = 1714564800000


def storj_config(**overrides) -> StorageConfig:
    data = {
        "storage_type": StorageType.STORJ,
        "storj_access_key": "access",
        "storj_secret_key": "secret",
        "storj_endpoint": "https://gateway.storjshare.io",
        "storj_bucket": "unboxing",
    }
    data.update(overrides)
    return StorageConfig(**data)


@pytest.mark.parametrize(
    "mime_type, expected",
    [
        ("video/mp4", "mp4"),
        ("video/webm;codecs=vp9", "webm"),
        ("image/jpeg", "jpg"),
        ("image/png", "png"),
        ("video/x-matroska", "mkv"),
        ("image/gif", "jpg"),
        ("video/quicktime", "webm"),
        ("application/octet-stream", "webm"),
        (None, "webm"),
        ("", "webm"),
    ],
)
def test_get_file_extension(mime_type, expected):
    assert get_file_extension(mime_type) == expected


def test_generate_filename_is_unique():
    names = {generate_filename("video/mp4") for _ in range(50)}
    assert len(names) == 50
    assert all(name.startswith("recording_") and name.endswith(".mp4") for name in names)


def test_build_object_key_defaults_sku():
    assert build_object_key("PO-1", None, "2024-05-01", "a.webm") == "PO-1/default/2024-05-01/a.webm"
    assert build_object_key("PO-1", "S", "2024-05-01", "a.webm") == "PO-1/S/2024-05-01/a.webm"


@pytest.mark.parametrize("value", ["a/b", "a\\b", ".", ".."])
def test_validate_key_segment_rejects_separators(value):
    with pytest.raises(ValidationError) as exc_info:
        validate_key_segment("orderId", value)
    assert exc_info.value.fields == ["orderId"]


def test_validate_key_segment_accepts_plain_ids():
    assert validate_key_segment("skuId", "SKU-9.v2") == "SKU-9.v2"


@pytest.mark.asyncio
async def test_local_store_writes_file(tmp_path):
    adapter = LocalStorageAdapter(tmp_path, clock=fixed_clock)

    stored = await adapter.store(b"video-bytes", "PO-1001", sku_id="SKU-9", mime_type="video/webm")

    assert stored.storage_type == StorageType.LOCAL
    assert stored.date == "2024-05-01"
    assert stored.timestamp == FIXED_MS
    assert stored.url is None
    assert stored.path == f"PO-1001/SKU-9/2024-05-01/{stored.filename}"
    assert (tmp_path / stored.path).read_bytes() == b"video-bytes"


@pytest.mark.asyncio
async def test_local_store_without_sku_uses_default_folder(tmp_path):
    adapter = LocalStorageAdapter(tmp_path, clock=fixed_clock)

    first = await adapter.store(b"one", "PO-1", mime_type="image/png")
    second = await adapter.store(b"two", "PO-1", mime_type="image/png")

    assert first.path.startswith("PO-1/default/2024-05-01/")
    assert first.filename.endswith(".png")
    assert first.path != second.path
    assert (tmp_path / first.path).read_bytes() == b"one"


@pytest.mark.asyncio
async def test_local_store_failure_raises(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("file, not a directory")
    adapter = LocalStorageAdapter(blocker, clock=fixed_clock)

    with pytest.raises(LocalStorageError) as exc_info:
        await adapter.store(b"x", "PO-1")
    assert exc_info.value.backend == "local"
    assert exc_info.value.status_code == 500


@pytest.mark.asyncio
async def test_url_store_posts_multipart_with_bearer_token():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("authorization")
        seen["content_type"] = request.headers.get("content-type")
        seen["body"] = request.content
        return httpx.Response(
            200,
            json={"path": "remote/abc", "url": "https://cdn.example.com/abc.webm"},
        )

    config = StorageConfig(
        storage_type=StorageType.URL,
        save_url="https://uploads.example.com/save",
        api_key="secret-token",
    )
    adapter = UrlStorageAdapter(config, transport=httpx.MockTransport(handler), clock=fixed_clock)

    stored = await adapter.store(
        b"video-bytes", "PO-1001", sku_id="SKU-9", mime_type="video/webm", notes="dented"
    )

    assert seen["url"] == "https://uploads.example.com/save"
    assert seen["auth"] == "Bearer secret-token"
    assert seen["content_type"].startswith("multipart/form-data")
    for fragment in (b"PO-1001", b"SKU-9", b"dented", b"2024-05-01", str(FIXED_MS).encode(), b"video-bytes"):
        assert fragment in seen["body"]

    assert stored.storage_type == StorageType.URL
    assert stored.path == "remote/abc"
    assert stored.url == "https://cdn.example.com/abc.webm"
    assert stored.timestamp == FIXED_MS


@pytest.mark.asyncio
async def test_url_store_without_api_key_sends_no_auth_header():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers.get("authorization")
        return httpx.Response(200, json={"url": "https://cdn.example.com/x"})

    config = StorageConfig(storage_type=StorageType.URL, save_url="https://uploads.example.com/save")
    adapter = UrlStorageAdapter(config, transport=httpx.MockTransport(handler))

    stored = await adapter.store(b"x", "PO-1")
    assert seen["auth"] is None
    assert stored.path == "https://cdn.example.com/x"


@pytest.mark.asyncio
async def test_url_store_falls_back_to_save_url_and_generated_filename():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={})

    config = StorageConfig(storage_type=StorageType.URL, save_url="https://uploads.example.com/save")
    adapter = UrlStorageAdapter(config, transport=httpx.MockTransport(handler))

    stored = await adapter.store(b"x", "PO-1", mime_type="video/mp4")
    assert stored.url == "https://uploads.example.com/save"
    assert stored.filename.endswith(".mp4")


@pytest.mark.asyncio
async def test_url_store_non_success_status():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, text="bad token")

    config = StorageConfig(storage_type=StorageType.URL, save_url="https://uploads.example.com/save")
    adapter = UrlStorageAdapter(config, transport=httpx.MockTransport(handler))

    with pytest.raises(UrlUpstreamError) as exc_info:
        await adapter.store(b"x", "PO-1")
    assert exc_info.value.upstream_status == 401
    assert "bad token" in exc_info.value.detail
    assert exc_info.value.status_code == 502


@pytest.mark.asyncio
async def test_url_store_timeout():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    config = StorageConfig(storage_type=StorageType.URL, save_url="https://uploads.example.com/save")
    adapter = UrlStorageAdapter(config, timeout=0.5, transport=httpx.MockTransport(handler))

    with pytest.raises(UrlUpstreamError) as exc_info:
        await adapter.store(b"x", "PO-1")
    assert exc_info.value.upstream_status is None


@pytest.mark.asyncio
async def test_url_store_connection_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    config = StorageConfig(storage_type=StorageType.URL, save_url="https://uploads.example.com/save")
    adapter = UrlStorageAdapter(config, transport=httpx.MockTransport(handler))

    with pytest.raises(UrlUpstreamError):
        await adapter.store(b"x", "PO-1")


@pytest.mark.asyncio
async def test_url_store_invalid_json():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>ok</html>")

    config = StorageConfig(storage_type=StorageType.URL, save_url="https://uploads.example.com/save")
    adapter = UrlStorageAdapter(config, transport=httpx.MockTransport(handler))

    with pytest.raises(UrlUpstreamError):
        await adapter.store(b"x", "PO-1")


@pytest.mark.asyncio
async def test_url_store_requires_save_url():
    config = StorageConfig(storage_type=StorageType.URL)
    adapter = UrlStorageAdapter(config)

    with pytest.raises(ConfigIncompleteError) as exc_info:
        await adapter.store(b"x", "PO-1")
    assert exc_info.value.missing_fields == ["saveUrl"]


@pytest.mark.asyncio
async def test_storj_missing_bucket_makes_no_network_call():
    adapter = StorjStorageAdapter(storj_config(storj_bucket=None))

    with patch("app.features.storage.adapters.boto3.client") as client_factory:
        with pytest.raises(ConfigIncompleteError) as exc_info:
            await adapter.store(b"x", "PO-1")

    assert exc_info.value.missing_fields == ["storjBucket"]
    client_factory.assert_not_called()


@pytest.mark.asyncio
async def test_storj_store_uploads_with_path_style_url():
    s3 = MagicMock()
    adapter = StorjStorageAdapter(storj_config(), clock=fixed_clock)

    with patch.object(StorjStorageAdapter, "_create_client", return_value=s3):
        stored = await adapter.store(b"video-bytes", "PO-1001", sku_id="SKU-9", mime_type="video/mp4")

    key = f"PO-1001/SKU-9/2024-05-01/{stored.filename}"
    s3.put_object.assert_called_once_with(
        Bucket="unboxing",
        Key=key,
        Body=b"video-bytes",
        ContentType="video/mp4",
    )
    assert stored.path == key
    assert stored.url == f"https://gateway.storjshare.io/unboxing/{key}"
    assert stored.storage_type == StorageType.STORJ


def test_storj_client_uses_path_addressing():
    adapter = StorjStorageAdapter(storj_config(), timeout=5)

    with patch("app.features.storage.adapters.boto3.client") as client_factory:
        adapter._create_client()

    kwargs = client_factory.call_args.kwargs
    assert client_factory.call_args.args == ("s3",)
    assert kwargs["endpoint_url"] == "https://gateway.storjshare.io"
    assert kwargs["aws_access_key_id"] == "access"
    assert kwargs["config"].s3 == {"addressing_style": "path"}


@pytest.mark.asyncio
async def test_storj_client_error_carries_status():
    s3 = MagicMock()
    s3.put_object.side_effect = ClientError(
        {"Error": {"Code": "AccessDenied", "Message": "denied"}, "ResponseMetadata": {"HTTPStatusCode": 403}},
        "PutObject",
    )
    adapter = StorjStorageAdapter(storj_config())

    with patch.object(StorjStorageAdapter, "_create_client", return_value=s3):
        with pytest.raises(StorjUpstreamError) as exc_info:
            await adapter.store(b"x", "PO-1")

    assert exc_info.value.upstream_status == 403
    assert exc_info.value.backend == "storj"


@pytest.mark.asyncio
async def test_storj_connection_error():
    s3 = MagicMock()
    s3.put_object.side_effect = EndpointConnectionError(endpoint_url="https://gateway.storjshare.io")
    adapter = StorjStorageAdapter(storj_config())

    with patch.object(StorjStorageAdapter, "_create_client", return_value=s3):
        with pytest.raises(StorjUpstreamError) as exc_info:
            await adapter.store(b"x", "PO-1")

    assert exc_info.value.upstream_status is None


def test_get_storage_adapter_dispatch(tmp_path):
    local = get_storage_adapter(StorageConfig(storage_type=StorageType.LOCAL, local_path=str(tmp_path)))
    assert isinstance(local, LocalStorageAdapter)
    assert local.base_dir == tmp_path

    url = get_storage_adapter(StorageConfig(storage_type=StorageType.URL, save_url="https://x.example.com"))
    assert isinstance(url, UrlStorageAdapter)

    assert isinstance(get_storage_adapter(storj_config()), StorjStorageAdapter)


def test_stamp_uses_utc_date(tmp_path):
    late_evening = lambda: datetime(2024, 5, 1, 23, 30, tzinfo=timezone.utc)
    adapter = LocalStorageAdapter(tmp_path, clock=late_evening)
    assert adapter._stamp() == ("2024-05-01", FIXED_MS + 41400000)
