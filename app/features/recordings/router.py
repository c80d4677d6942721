"""录像浏览路由模块

提供录像的目录浏览、搜索、查找、时间线分页和最近记录接口
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from loguru import logger

from app.features.storage_config.service import ConfigStore, get_config_store
from app.shared.exceptions import NotFoundError

from .migration import RecordingMigrator, get_recording_migrator
from .models import BrowseResponse, RecentScansResponse, RecordingPage, RecordingRecord
from .service import RecordingBrowser
from .store import MetadataStore, get_metadata_store


router = APIRouter()


async def get_migrated_store(
    store: MetadataStore = Depends(get_metadata_store),
    config_store: ConfigStore = Depends(get_config_store),
    migrator: RecordingMigrator = Depends(get_recording_migrator)
) -> MetadataStore:
    """返回元数据存储，首次调用时先完成历史录像迁移

    Returns:
        MetadataStore: 元数据存储
    """
    if not migrator.done:
        root = await config_store.get_local_root()
        result = await migrator.ensure_migrated(store, root)
        if result.ran:
            logger.info(f"迁移检查完成，新增 {result.migrated} 条记录")
    return store


@router.get(
    "/recordings",
    response_model=BrowseResponse,
    response_model_exclude_none=True,
    summary="浏览或搜索录像",
    description="传入search时返回全部匹配结果；否则按path浏览 订单号/SKU/日期 虚拟目录并分页"
)
async def list_recordings(
    path: Optional[str] = Query(default=None, description="以斜杠连接的层级路径"),
    search: Optional[str] = Query(default=None, description="搜索关键字"),
    limit: int = Query(default=20, ge=1, le=500, description="每页数量"),
    offset: int = Query(default=0, ge=0, description="偏移量"),
    store: MetadataStore = Depends(get_migrated_store)
) -> BrowseResponse:
    """浏览或搜索录像"""
    browser = RecordingBrowser(store)

    if search:
        response = await browser.search(search)
        logger.debug(f"搜索录像 '{search}'，共{response.total}条")
        return response

    return await browser.browse(path, offset=offset, limit=limit)


@router.get(
    "/recordings/lookup",
    response_model=RecordingRecord,
    response_model_exclude_none=True,
    summary="按路径查找录像",
    description="根据存储路径返回对应的录像记录"
)
async def lookup_recording(
    path: str = Query(..., min_length=1, description="录像的存储路径"),
    store: MetadataStore = Depends(get_migrated_store)
) -> RecordingRecord:
    """按路径查找录像

    Raises:
        NotFoundError: 没有对应的录像记录
    """
    record = await store.find_by_path(path)
    if record is None:
        raise NotFoundError(f"录像记录不存在: {path}")
    return record


@router.get(
    "/recordings/timeline",
    response_model=RecordingPage,
    response_model_exclude_none=True,
    summary="按时间分页列出录像",
    description="不分层级，按保存时间倒序分页返回全部录像记录"
)
async def recording_timeline(
    limit: int = Query(default=20, ge=1, le=500, description="每页数量"),
    offset: int = Query(default=0, ge=0, description="偏移量"),
    store: MetadataStore = Depends(get_migrated_store)
) -> RecordingPage:
    """按时间倒序分页列出录像"""
    return await store.list_page(offset=offset, limit=limit)


@router.get(
    "/recent-scans",
    response_model=RecentScansResponse,
    response_model_exclude_none=True,
    summary="最近录像",
    description="按保存时间倒序返回最近的录像记录"
)
async def recent_scans(
    limit: int = Query(default=10, ge=1, le=100, description="返回数量"),
    store: MetadataStore = Depends(get_migrated_store)
) -> RecentScansResponse:
    """获取最近录像"""
    recordings = await store.get_recent(limit)
    return RecentScansResponse(success=True, recordings=recordings)
