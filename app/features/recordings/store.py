"""录像元数据存储模块

所有录像记录保存在一个JSON文档中。写入走实例内的FIFO写队列，
同一时刻只有一个"读取-修改-写回"周期在执行，避免并发上传互相覆盖
"""

import asyncio
import time
from functools import lru_cache
from typing import Callable, Optional

from loguru import logger
from pydantic import ValidationError as PydanticValidationError
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from app.core.config import settings
from app.core.persistence import DocumentStore, get_document_store
from app.shared.exceptions import PersistError

from .models import FolderListing, MetadataDocument, RecordingPage, RecordingRecord

# 返回False表示文档未改动，跳过写回
Mutator = Callable[[MetadataDocument], Optional[bool]]


def now_ms() -> int:
    """当前时间的毫秒时间戳"""
    return int(time.time() * 1000)


class MetadataStore:
    """录像元数据存储

    读操作每次加载最新快照，可以与写队列并发执行；
    写操作通过 update 串行化，失败时按指数退避重试
    """

    def __init__(
        self,
        document_store: DocumentStore,
        key: Optional[str] = None,
        max_attempts: Optional[int] = None,
        backoff_base: Optional[float] = None,
        backoff_jitter: Optional[float] = None
    ) -> None:
        """初始化元数据存储

        Args:
            document_store: 文档存储
            key: 元数据文档键名
            max_attempts: 单个写周期最大尝试次数
            backoff_base: 退避基数（秒），每次失败后翻倍
            backoff_jitter: 退避随机抖动上限（秒）
        """
        self._documents = document_store
        self._key = key or settings.metadata_key
        self._max_attempts = max_attempts or settings.metadata_write_attempts
        self._backoff_base = (
            settings.metadata_backoff_base if backoff_base is None else backoff_base
        )
        self._backoff_jitter = (
            settings.metadata_backoff_jitter if backoff_jitter is None else backoff_jitter
        )
        # asyncio.Lock按等待顺序唤醒，起到FIFO写队列的作用
        self._write_lock = asyncio.Lock()

    async def read(self) -> MetadataDocument:
        """加载元数据文档

        文档缺失或无法解析时返回空文档；单条记录校验失败时不参与查询，
        但保留在 unparsed_records 中，下次写回时原样写入

        Returns:
            MetadataDocument: 元数据快照
        """
        raw = await self._documents.read(self._key)
        if raw is None:
            return MetadataDocument(recordings=[], last_updated=now_ms())

        if not isinstance(raw, dict) or not isinstance(raw.get("recordings", []), list):
            logger.warning(f"元数据文档格式错误，按空文档处理: {self._key}")
            return MetadataDocument(recordings=[], last_updated=now_ms())

        recordings = []
        unparsed = []
        for item in raw.get("recordings", []):
            try:
                recordings.append(RecordingRecord.model_validate(item))
            except PydanticValidationError as e:
                logger.warning(f"跳过无效的录像记录: {e.errors()[0].get('msg')}")
                unparsed.append(item)

        last_updated = raw.get("lastUpdated")
        if not isinstance(last_updated, int):
            last_updated = now_ms()

        return MetadataDocument(
            recordings=recordings,
            last_updated=last_updated,
            unparsed_records=unparsed,
        )

    async def write(self, document: MetadataDocument) -> None:
        """写回元数据文档

        校验失败的原始记录追加在有效记录之后原样写回

        Raises:
            PersistError: 底层介质拒绝写入
        """
        document.last_updated = now_ms()
        payload = document.to_document()
        payload["recordings"].extend(document.unparsed_records)
        await self._documents.write(self._key, payload)

    async def update(self, mutator: Mutator) -> MetadataDocument:
        """串行执行一次"读取-修改-写回"周期

        前一个周期完全结束（无论成功失败）后才会开始下一个；
        写入失败时重新读取并重试，重试用尽后把错误抛给调用方

        Args:
            mutator: 就地修改文档的函数，返回False时跳过写回

        Returns:
            MetadataDocument: 写回后的文档

        Raises:
            PersistError: 重试用尽后仍然写入失败
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=wait_exponential(multiplier=self._backoff_base) + wait_random(0, self._backoff_jitter),
            retry=retry_if_exception_type(PersistError),
            before_sleep=self._log_retry,
            reraise=True,
        )

        async with self._write_lock:
            async for attempt in retrying:
                with attempt:
                    document = await self.read()
                    if mutator(document) is False:
                        return document
                    await self.write(document)
                    return document

    def _log_retry(self, retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        delay = retry_state.next_action.sleep if retry_state.next_action else 0
        logger.warning(
            f"元数据写入失败，第{retry_state.attempt_number}次尝试，"
            f"{delay:.2f}秒后重试: {error}"
        )

    async def add_recording(self, record: RecordingRecord) -> None:
        """新增一条录像记录，插入到列表开头

        Raises:
            PersistError: 重试用尽后仍然写入失败
        """
        def prepend(document: MetadataDocument) -> None:
            document.recordings.insert(0, record)

        try:
            await self.update(prepend)
        except PersistError:
            logger.error(f"录像记录写入失败，文件已保存但无法被检索: {record.path}")
            raise

        logger.info(f"录像记录已保存: {record.order_id}/{record.sku_folder}/{record.date}/{record.filename}")

    async def get_recent(self, limit: int = 10) -> list[RecordingRecord]:
        """最近保存的 limit 条记录"""
        if limit <= 0:
            return []
        document = await self.read()
        return document.recordings[:limit]

    async def list_page(self, offset: int = 0, limit: int = 20) -> RecordingPage:
        """按时间倒序分页"""
        document = await self.read()
        total = len(document.recordings)
        offset = max(offset, 0)
        limit = max(limit, 0)
        return RecordingPage(
            recordings=document.recordings[offset:offset + limit],
            total=total,
            has_more=offset + limit < total,
        )

    async def search(self, query: str) -> list[RecordingRecord]:
        """按订单号、SKU、备注、日期做不区分大小写的子串匹配

        结果保持文档中的倒序，不排序、不分页
        """
        needle = query.lower()
        document = await self.read()
        return [
            record for record in document.recordings
            if needle in record.order_id.lower()
            or needle in (record.sku_id or "").lower()
            or needle in (record.notes or "").lower()
            or needle in record.date.lower()
        ]

    async def find_by_path(self, path: str) -> Optional[RecordingRecord]:
        """按存储路径查找记录"""
        document = await self.read()
        for record in document.recordings:
            if record.path == path:
                return record
        return None

    async def list_by_path(self, segments: list[str]) -> FolderListing:
        """由扁平记录列表推导出的虚拟目录

        层级: 订单号 / SKU / 日期 / 文件，每次调用都从完整列表重新计算

        Args:
            segments: 路径片段，长度0-3

        Returns:
            FolderListing: 当前层级的子目录和文件
        """
        records = (await self.read()).recordings
        depth = len(segments)

        if depth == 0:
            return FolderListing(folders=sorted({r.order_id for r in records}))

        if depth == 1:
            order_id, = segments
            skus = {r.sku_folder for r in records if r.order_id == order_id}
            return FolderListing(folders=sorted(skus))

        if depth == 2:
            order_id, sku = segments
            dates = {
                r.date for r in records
                if r.order_id == order_id and r.sku_folder == sku
            }
            return FolderListing(folders=sorted(dates, reverse=True))

        if depth == 3:
            order_id, sku, date = segments
            files = [
                r for r in records
                if r.order_id == order_id and r.sku_folder == sku and r.date == date
            ]
            return FolderListing(files=files)

        return FolderListing()


@lru_cache
def get_metadata_store() -> MetadataStore:
    """获取进程内唯一的元数据存储实例

    在FastAPI路由中使用: store: MetadataStore = Depends(get_metadata_store)
    """
    return MetadataStore(get_document_store())
