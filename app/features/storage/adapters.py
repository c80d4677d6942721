"""存储后端适配器模块

三种后端实现同一个接口: 把文件保存到 (订单号, SKU, 日期) 对应的位置并返回定位信息。
对象键布局由适配器决定，调用方不拼接路径
"""

import asyncio
import functools
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

import boto3
import httpx
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError
from loguru import logger

from app.core.config import settings
from app.features.recordings.models import DEFAULT_SKU
from app.features.storage_config.models import StorageConfig, StorageType
from app.features.storage_config.service import STORJ_REQUIRED_FIELDS
from app.shared.exceptions import (
    ConfigIncompleteError,
    LocalStorageError,
    StorjUpstreamError,
    UrlUpstreamError,
    ValidationError,
)

from .models import StoredMedia

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def get_file_extension(mime_type: Optional[str]) -> str:
    """根据MIME类型决定文件扩展名

    不信任客户端提供的文件名，按固定优先级匹配，未知类型默认webm
    """
    if not mime_type:
        return "webm"
    lower = mime_type.lower()

    if "mp4" in lower:
        return "mp4"
    if "jpeg" in lower or "jpg" in lower:
        return "jpg"
    if "png" in lower:
        return "png"
    if "webm" in lower:
        return "webm"
    if "matroska" in lower or "mkv" in lower:
        return "mkv"

    # 按大类兜底
    if lower.startswith("image/"):
        return "jpg"
    if lower.startswith("video/"):
        return "webm"

    return "webm"


def generate_filename(mime_type: Optional[str]) -> str:
    """生成唯一文件名 recording_<uuid>.<ext>"""
    return f"recording_{uuid.uuid4()}.{get_file_extension(mime_type)}"


def validate_key_segment(field: str, value: str) -> str:
    """校验用作路径片段的标识符

    Raises:
        ValidationError: 包含路径分隔符或为 . / ..
    """
    if "/" in value or "\\" in value or value in (".", ".."):
        raise ValidationError(f"{field} 不能包含路径分隔符: {value}", fields=[field])
    return value


def build_object_key(order_id: str, sku_id: Optional[str], date: str, filename: str) -> str:
    """对象键布局: {orderId}/{skuId或default}/{date}/{filename}"""
    return "/".join([order_id, sku_id or DEFAULT_SKU, date, filename])


class StorageAdapter(ABC):
    """存储后端适配器基类"""

    storage_type: StorageType

    def __init__(self, clock: Optional[Clock] = None) -> None:
        self._clock = clock or utc_now

    def _stamp(self) -> tuple[str, int]:
        """当前日期和毫秒时间戳"""
        now = self._clock()
        return now.strftime("%Y-%m-%d"), int(now.timestamp() * 1000)

    @abstractmethod
    async def store(
        self,
        blob: bytes,
        order_id: str,
        sku_id: Optional[str] = None,
        mime_type: Optional[str] = None,
        notes: Optional[str] = None
    ) -> StoredMedia:
        """保存文件

        Args:
            blob: 文件内容
            order_id: 订单号
            sku_id: SKU
            mime_type: MIME类型，用于决定扩展名
            notes: 备注（只有远程上传接口会转发）

        Returns:
            StoredMedia: 定位信息

        Raises:
            StorageError: 后端写入失败
        """


class LocalStorageAdapter(StorageAdapter):
    """本地文件系统存储"""

    storage_type = StorageType.LOCAL

    def __init__(self, base_dir: Path, clock: Optional[Clock] = None) -> None:
        super().__init__(clock)
        self.base_dir = Path(base_dir)

    async def store(
        self,
        blob: bytes,
        order_id: str,
        sku_id: Optional[str] = None,
        mime_type: Optional[str] = None,
        notes: Optional[str] = None
    ) -> StoredMedia:
        date, timestamp = self._stamp()
        filename = generate_filename(mime_type)
        key = build_object_key(order_id, sku_id, date, filename)
        target = self.base_dir.joinpath(*key.split("/"))

        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._write_file, target, blob)
        except OSError as e:
            logger.error(f"本地文件写入失败 {target}: {e}")
            raise LocalStorageError(f"本地文件写入失败: {e}") from e

        logger.info(f"文件已保存到本地: {target}")
        return StoredMedia(
            path=key,
            filename=filename,
            storage_type=self.storage_type,
            date=date,
            timestamp=timestamp,
            mime_type=mime_type,
        )

    @staticmethod
    def _write_file(target: Path, blob: bytes) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(blob)


class UrlStorageAdapter(StorageAdapter):
    """远程上传接口存储

    以multipart表单转发文件和元数据，从接口返回的JSON中读取最终定位
    """

    storage_type = StorageType.URL

    def __init__(
        self,
        config: StorageConfig,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Optional[Clock] = None
    ) -> None:
        super().__init__(clock)
        self.config = config
        self.timeout = timeout or settings.upstream_timeout
        self.transport = transport

    async def store(
        self,
        blob: bytes,
        order_id: str,
        sku_id: Optional[str] = None,
        mime_type: Optional[str] = None,
        notes: Optional[str] = None
    ) -> StoredMedia:
        save_url = self.config.save_url
        if not save_url:
            raise ConfigIncompleteError(["saveUrl"])

        date, timestamp = self._stamp()
        filename = generate_filename(mime_type)

        data = {"orderId": order_id, "date": date, "timestamp": str(timestamp)}
        if sku_id:
            data["skuId"] = sku_id
        if notes:
            data["notes"] = notes
        if mime_type:
            data["mimeType"] = mime_type
        files = {"file": (filename, blob, mime_type or "application/octet-stream")}

        headers = {}
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(save_url, data=data, files=files, headers=headers)
        except httpx.TimeoutException as e:
            logger.error(f"上传接口超时 {save_url}: {e}")
            raise UrlUpstreamError(f"上传接口超时（{self.timeout}秒）") from e
        except httpx.HTTPError as e:
            logger.error(f"上传接口请求失败 {save_url}: {e}")
            raise UrlUpstreamError(f"上传接口请求失败: {e}") from e

        if not response.is_success:
            logger.error(f"上传接口返回错误 {response.status_code}: {response.text}")
            raise UrlUpstreamError(
                f"上传接口返回错误 {response.status_code}: {response.text}",
                upstream_status=response.status_code
            )

        try:
            result = response.json()
        except ValueError as e:
            raise UrlUpstreamError(f"上传接口返回的不是合法JSON: {e}") from e
        if not isinstance(result, dict):
            raise UrlUpstreamError("上传接口返回的JSON不是对象")

        logger.info(f"文件已上传到远程接口: {save_url}")
        return StoredMedia(
            path=result.get("path") or result.get("url") or "",
            url=result.get("url") or save_url,
            filename=result.get("filename") or filename,
            storage_type=self.storage_type,
            date=date,
            timestamp=timestamp,
            mime_type=mime_type,
        )


class StorjStorageAdapter(StorageAdapter):
    """S3兼容对象存储

    使用path-style寻址上传，返回 {endpoint}/{bucket}/{key} 形式的URL
    """

    storage_type = StorageType.STORJ

    def __init__(
        self,
        config: StorageConfig,
        timeout: Optional[float] = None,
        region_name: Optional[str] = None,
        clock: Optional[Clock] = None
    ) -> None:
        super().__init__(clock)
        self.config = config
        self.timeout = timeout or settings.upstream_timeout
        self.region_name = region_name or settings.storj_region

    def missing_fields(self) -> list[str]:
        return [
            alias for alias, field in STORJ_REQUIRED_FIELDS.items()
            if not getattr(self.config, field)
        ]

    def _create_client(self):
        """创建S3客户端

        不在客户端层重试，失败直接交给调用方
        """
        return boto3.client(
            "s3",
            endpoint_url=self.config.storj_endpoint,
            aws_access_key_id=self.config.storj_access_key,
            aws_secret_access_key=self.config.storj_secret_key,
            region_name=self.region_name,
            config=BotoConfig(
                s3={"addressing_style": "path"},
                connect_timeout=self.timeout,
                read_timeout=self.timeout,
                retries={"total_max_attempts": 1},
            ),
        )

    def object_url(self, key: str) -> str:
        return f"{self.config.storj_endpoint.rstrip('/')}/{self.config.storj_bucket}/{key}"

    async def store(
        self,
        blob: bytes,
        order_id: str,
        sku_id: Optional[str] = None,
        mime_type: Optional[str] = None,
        notes: Optional[str] = None
    ) -> StoredMedia:
        missing = self.missing_fields()
        if missing:
            raise ConfigIncompleteError(missing)

        date, timestamp = self._stamp()
        filename = generate_filename(mime_type)
        key = build_object_key(order_id, sku_id, date, filename)

        loop = asyncio.get_running_loop()
        try:
            client = self._create_client()
            await loop.run_in_executor(
                None,
                functools.partial(
                    client.put_object,
                    Bucket=self.config.storj_bucket,
                    Key=key,
                    Body=blob,
                    ContentType=mime_type or "application/octet-stream",
                ),
            )
        except ClientError as e:
            status = e.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
            logger.error(f"对象存储上传失败 {key}: {e}")
            raise StorjUpstreamError(f"对象存储上传失败: {e}", upstream_status=status) from e
        except (BotoCoreError, ValueError) as e:
            logger.error(f"对象存储连接失败 {key}: {e}")
            raise StorjUpstreamError(f"对象存储连接失败: {e}") from e

        url = self.object_url(key)
        logger.info(f"文件已上传到对象存储: {url}")
        return StoredMedia(
            path=key,
            url=url,
            filename=filename,
            storage_type=self.storage_type,
            date=date,
            timestamp=timestamp,
            mime_type=mime_type,
        )


def get_storage_adapter(config: StorageConfig) -> StorageAdapter:
    """根据配置选择存储后端适配器"""
    if config.storage_type == StorageType.URL:
        return UrlStorageAdapter(config)
    if config.storage_type == StorageType.STORJ:
        return StorjStorageAdapter(config)
    return LocalStorageAdapter(Path(config.local_path or settings.recordings_dir))
