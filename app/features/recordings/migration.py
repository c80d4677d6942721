"""历史录像迁移模块

元数据文档为空时，扫描本地存储目录，把已有的录像文件补录为元数据记录。
每个进程只执行一次
"""

import asyncio
import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from loguru import logger

from app.features.storage_config.models import StorageType

from .models import MetadataDocument, RecordingRecord
from .store import MetadataStore

VIDEO_EXTENSIONS = {".webm": "video/webm", ".mp4": "video/mp4"}


def scan_local_recordings(root: Path) -> list[RecordingRecord]:
    """扫描本地目录中的录像文件

    目录结构为 orderId/skuId/date/filename，目录层级少于3的文件会被跳过

    Args:
        root: 本地存储根目录

    Returns:
        list[RecordingRecord]: 发现的录像（未去重）
    """
    root = Path(root)
    if not root.is_dir():
        logger.debug(f"本地存储目录不存在，跳过扫描: {root}")
        return []

    found = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames.sort()
        relative_dir = Path(dirpath).relative_to(root)
        parts = relative_dir.parts
        for filename in sorted(filenames):
            suffix = Path(filename).suffix.lower()
            if suffix not in VIDEO_EXTENSIONS:
                continue
            if len(parts) < 3:
                logger.debug(f"目录层级不足，跳过: {relative_dir / filename}")
                continue

            order_id, sku_id, date = parts[:3]
            full_path = Path(dirpath) / filename
            try:
                mtime = full_path.stat().st_mtime
            except OSError as e:
                logger.warning(f"无法读取文件信息，跳过 {full_path}: {e}")
                continue

            found.append(RecordingRecord(
                order_id=order_id,
                sku_id=sku_id,
                date=date,
                timestamp=int(mtime * 1000),
                storage_type=StorageType.LOCAL,
                path=(relative_dir / filename).as_posix(),
                filename=filename,
                mime_type=VIDEO_EXTENSIONS[suffix],
            ))

    return found


def known_paths(document: MetadataDocument) -> set[str]:
    """文档中已登记的路径，包括校验失败但仍保留的原始记录"""
    paths = {r.path for r in document.recordings}
    paths.update(
        item["path"] for item in document.unparsed_records
        if isinstance(item, dict) and isinstance(item.get("path"), str)
    )
    return paths


async def migrate_local_recordings(
    store: MetadataStore,
    root: Path,
    dry_run: bool = False
) -> int:
    """把本地已有的录像补录到元数据

    只插入路径尚未出现在元数据中的文件，重复执行不会产生重复记录；
    有新增时整个列表按时间戳倒序重排一次后写回

    Args:
        store: 元数据存储
        root: 本地存储根目录
        dry_run: 只统计不写入

    Returns:
        int: 新增（或将要新增）的记录数
    """
    loop = asyncio.get_running_loop()
    candidates = await loop.run_in_executor(None, scan_local_recordings, Path(root))
    if not candidates:
        return 0

    if dry_run:
        existing = known_paths(await store.read())
        return sum(1 for c in candidates if c.path not in existing)

    migrated = 0

    def backfill(document: MetadataDocument) -> bool:
        nonlocal migrated
        existing = known_paths(document)
        new_records = [c for c in candidates if c.path not in existing]
        migrated = len(new_records)
        if not new_records:
            return False

        document.recordings.extend(new_records)
        document.recordings.sort(key=lambda r: r.timestamp, reverse=True)
        return True

    await store.update(backfill)
    if migrated:
        logger.info(f"已从本地目录补录 {migrated} 条录像记录: {root}")
    return migrated


@dataclass
class MigrationResult:
    """一次迁移检查的结果"""

    ran: bool
    migrated: int = 0


class RecordingMigrator:
    """进程级迁移守卫

    第一次检查完成后置位，之后的调用直接返回；
    并发的首批请求会等待同一次迁移完成
    """

    def __init__(self) -> None:
        self._done = False
        self._lock = asyncio.Lock()

    @property
    def done(self) -> bool:
        return self._done

    async def ensure_migrated(self, store: MetadataStore, root: Path) -> MigrationResult:
        """元数据为空时执行一次迁移

        Raises:
            PersistError: 迁移结果写入失败（守卫不置位，下次请求会再试）
        """
        if self._done:
            return MigrationResult(ran=False)

        async with self._lock:
            if self._done:
                return MigrationResult(ran=False)

            document = await store.read()
            migrated = 0
            if not document.recordings:
                migrated = await migrate_local_recordings(store, root)

            self._done = True
            return MigrationResult(ran=True, migrated=migrated)


@lru_cache
def get_recording_migrator() -> RecordingMigrator:
    """获取进程内唯一的迁移守卫"""
    return RecordingMigrator()
