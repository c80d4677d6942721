"""存储配置服务模块

读取和保存当前存储后端配置，保存前按后端类型校验必填字段
"""

import asyncio
from functools import lru_cache
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

from loguru import logger
from pydantic import ValidationError as PydanticValidationError

from app.core.config import settings
from app.core.persistence import DocumentStore, get_document_store
from app.shared.exceptions import ConfigIncompleteError, ValidationError
from app.shared.schemas import clean_text

from .models import (
    DEFAULT_MAX_DURATION,
    DEFAULT_MAX_FILE_SIZE,
    MAX_DURATION_RANGE,
    MAX_FILE_SIZE_RANGE,
    StorageConfig,
    StorageType,
)

STORJ_REQUIRED_FIELDS = {
    "storjAccessKey": "storj_access_key",
    "storjSecretKey": "storj_secret_key",
    "storjEndpoint": "storj_endpoint",
    "storjBucket": "storj_bucket",
}


def is_http_url(value: Optional[str]) -> bool:
    """判断是否为格式正确的http(s)地址"""
    if not value:
        return False
    parsed = urlparse(value)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


class ConfigStore:
    """存储配置服务

    配置文档缺失或损坏时返回默认配置，不阻塞新的录像保存
    """

    def __init__(
        self,
        document_store: DocumentStore,
        key: Optional[str] = None,
        default_local_path: Optional[Path] = None
    ) -> None:
        """初始化存储配置服务

        Args:
            document_store: 文档存储
            key: 配置文档键名，默认读取应用配置
            default_local_path: 默认本地保存目录
        """
        self._documents = document_store
        self._key = key or settings.config_key
        self._default_local_path = Path(default_local_path or settings.recordings_dir)

    def default_config(self) -> StorageConfig:
        """默认配置：本地存储，录制上限300秒/100MB"""
        return StorageConfig(
            storage_type=StorageType.LOCAL,
            local_path=str(self._default_local_path),
            max_duration=DEFAULT_MAX_DURATION,
            max_file_size=DEFAULT_MAX_FILE_SIZE,
        )

    async def get(self) -> StorageConfig:
        """读取当前配置

        Returns:
            StorageConfig: 已保存的配置，缺失或损坏时返回默认配置
        """
        raw = await self._documents.read(self._key)
        if raw is None:
            logger.debug("未找到存储配置，使用默认配置")
            return self.default_config()

        try:
            return StorageConfig.model_validate(raw)
        except PydanticValidationError as e:
            logger.warning(f"存储配置文档无效，使用默认配置: {e}")
            return self.default_config()

    async def get_local_root(self) -> Path:
        """获取本地存储根目录"""
        config = await self.get()
        return Path(config.local_path or self._default_local_path)

    async def set(self, config: StorageConfig) -> StorageConfig:
        """校验并保存配置，整体替换旧配置

        Args:
            config: 新配置

        Returns:
            StorageConfig: 规范化后实际保存的配置

        Raises:
            ValidationError: 字段缺失或格式错误
            ConfigIncompleteError: storj缺少凭据字段
            PersistError: 配置文档写入失败
        """
        normalized = await self.validate(config)
        await self._documents.write(self._key, normalized.to_document())
        logger.info(f"存储配置已保存: {normalized.storage_type.value}")
        return normalized

    async def validate(self, config: StorageConfig) -> StorageConfig:
        """按后端类型校验配置并返回规范化后的副本"""
        data = config.model_copy(deep=True)
        for field in (
            "local_path", "save_url", "read_url", "api_key",
            "storj_access_key", "storj_secret_key", "storj_endpoint", "storj_bucket",
        ):
            setattr(data, field, clean_text(getattr(data, field)))

        self._validate_limits(data)

        if data.storage_type == StorageType.LOCAL:
            data.local_path = await self._prepare_local_path(data.local_path)
        elif data.storage_type == StorageType.URL:
            self._validate_url(data)
        elif data.storage_type == StorageType.STORJ:
            self._validate_storj(data)

        return data

    def _validate_limits(self, data: StorageConfig) -> None:
        if data.max_duration is None:
            data.max_duration = DEFAULT_MAX_DURATION
        if data.max_file_size is None:
            data.max_file_size = DEFAULT_MAX_FILE_SIZE

        low, high = MAX_DURATION_RANGE
        if not low <= data.max_duration <= high:
            raise ValidationError(
                f"maxDuration 必须在 {low}-{high} 秒之间",
                fields=["maxDuration"]
            )

        low, high = MAX_FILE_SIZE_RANGE
        if not low <= data.max_file_size <= high:
            raise ValidationError(
                f"maxFileSize 必须在 {low}-{high} MB 之间",
                fields=["maxFileSize"]
            )

    async def _prepare_local_path(self, local_path: Optional[str]) -> str:
        """确认本地目录可以创建，目录已存在时不做任何事"""
        path = Path(local_path or self._default_local_path).expanduser()
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(
                None, lambda: path.mkdir(parents=True, exist_ok=True)
            )
        except OSError as e:
            logger.warning(f"本地存储目录无法创建 {path}: {e}")
            raise ValidationError(
                f"localPath 无法创建或没有写权限: {path}",
                fields=["localPath"]
            ) from e

        return str(path.resolve())

    def _validate_url(self, data: StorageConfig) -> None:
        if not data.save_url:
            raise ConfigIncompleteError(["saveUrl"])
        if not is_http_url(data.save_url):
            raise ValidationError(f"saveUrl 不是合法的URL: {data.save_url}", fields=["saveUrl"])
        if data.read_url and not is_http_url(data.read_url):
            raise ValidationError(f"readUrl 不是合法的URL: {data.read_url}", fields=["readUrl"])

    def _validate_storj(self, data: StorageConfig) -> None:
        missing = [
            alias for alias, field in STORJ_REQUIRED_FIELDS.items()
            if not getattr(data, field)
        ]
        if missing:
            raise ConfigIncompleteError(missing)

        if not is_http_url(data.storj_endpoint):
            raise ValidationError(
                f"storjEndpoint 不是合法的URL: {data.storj_endpoint}",
                fields=["storjEndpoint"]
            )
        data.storj_endpoint = data.storj_endpoint.rstrip("/")


@lru_cache
def get_config_store() -> ConfigStore:
    """获取存储配置服务实例

    在FastAPI路由中使用: config_store: ConfigStore = Depends(get_config_store)
    """
    return ConfigStore(get_document_store())
