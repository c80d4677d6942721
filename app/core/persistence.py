"""文档持久化模块

配置文档和元数据文档都是单个JSON对象，按部署环境保存在本地文件或Redis中。
业务代码只依赖 DocumentStore 接口，具体实现在进程启动时选定一次
"""

import asyncio
import json
import os
import tempfile
from abc import ABC, abstractmethod
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

from loguru import logger
from redis.exceptions import RedisError

from app.shared.exceptions import PersistError

from .config import settings
from .redis import RedisManager, redis_manager


class DocumentStore(ABC):
    """JSON文档存储接口

    read 在文档缺失或损坏时返回None（由调用方回退到默认值），
    write 失败时抛出 PersistError，不允许静默回退到其他介质
    """

    backend_name: str = "abstract"

    @abstractmethod
    async def read(self, key: str) -> Optional[Any]:
        """读取文档，缺失或无法解析时返回None"""

    @abstractmethod
    async def write(self, key: str, document: Any) -> None:
        """整体写入文档

        Raises:
            PersistError: 底层介质拒绝写入
        """

    @abstractmethod
    async def healthy(self) -> bool:
        """检查存储介质是否可用"""


class FileDocumentStore(DocumentStore):
    """本地JSON文件存储

    每个文档对应 base_dir 下的 {key}.json，写入时先写临时文件再原子替换
    """

    backend_name = "file"

    def __init__(self, base_dir: Path) -> None:
        self.base_dir = Path(base_dir)

    def path_for(self, key: str) -> Path:
        return self.base_dir / f"{key}.json"

    async def read(self, key: str) -> Optional[Any]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._read_sync, key)

    def _read_sync(self, key: str) -> Optional[Any]:
        path = self.path_for(key)
        if not path.exists():
            return None

        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.error(f"读取文档失败，按空文档处理 {path}: {e}")
            return None

    async def write(self, key: str, document: Any) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._write_sync, key, document)

    def _write_sync(self, key: str, document: Any) -> None:
        path = self.path_for(key)
        tmp_name = None
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=path.parent,
                prefix=f".{key}.",
                suffix=".tmp",
                delete=False,
            ) as tmp:
                tmp_name = tmp.name
                json.dump(document, tmp, indent=2, ensure_ascii=False)
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(tmp_name, path)
        except OSError as e:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            logger.error(f"写入文档失败 {path}: {e}")
            raise PersistError(f"无法写入文档 {key}: {e}", key=key) from e

        logger.debug(f"文档已写入: {path}")

    async def healthy(self) -> bool:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._healthy_sync)

    def _healthy_sync(self) -> bool:
        try:
            self.base_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error(f"文档目录不可用 {self.base_dir}: {e}")
            return False
        return os.access(self.base_dir, os.W_OK)


class RedisDocumentStore(DocumentStore):
    """Redis文档存储

    用于只读文件系统的部署环境，写入失败直接抛出，不回退到文件系统
    """

    backend_name = "redis"

    def __init__(self, manager: RedisManager) -> None:
        self.manager = manager

    async def read(self, key: str) -> Optional[Any]:
        try:
            return await self.manager.get_json(key)
        except (RedisError, RuntimeError, json.JSONDecodeError) as e:
            logger.error(f"从Redis读取文档失败，按空文档处理 {key}: {e}")
            return None

    async def write(self, key: str, document: Any) -> None:
        try:
            await self.manager.set_json(key, document)
        except (RedisError, RuntimeError, TypeError) as e:
            logger.error(f"写入Redis文档失败 {key}: {e}")
            raise PersistError(f"无法写入Redis文档 {key}: {e}", key=key) from e

        logger.debug(f"文档已写入Redis: {key}")

    async def healthy(self) -> bool:
        return await self.manager.ping()


def create_document_store() -> DocumentStore:
    """根据部署配置创建文档存储

    Returns:
        DocumentStore: 文件或Redis实现

    Raises:
        RuntimeError: 选择了redis但未配置REDIS_URL
    """
    if settings.persistence_backend == "redis":
        if not redis_manager.redis_client:
            raise RuntimeError("PERSISTENCE_BACKEND=redis 但未配置 REDIS_URL")
        logger.info("文档持久化目标: Redis")
        return RedisDocumentStore(redis_manager)

    logger.info(f"文档持久化目标: 本地文件 {settings.data_dir}")
    return FileDocumentStore(settings.data_dir)


@lru_cache
def get_document_store() -> DocumentStore:
    """获取进程内唯一的文档存储实例

    在FastAPI路由中使用: store: DocumentStore = Depends(get_document_store)
    """
    return create_document_store()
