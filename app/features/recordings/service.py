"""录像浏览服务模块

把元数据存储的虚拟目录和搜索结果整理成前端浏览页面使用的格式
"""

from typing import Optional

from .models import BrowseItem, BrowseResponse, FolderListing, RecordingRecord
from .store import MetadataStore


def split_path(path: Optional[str]) -> list[str]:
    """把 "PO-1001/SKU-9" 形式的路径拆成片段，忽略多余的斜杠"""
    if not path:
        return []
    return [segment for segment in path.split("/") if segment]


def _file_item(record: RecordingRecord, parent: Optional[str] = None) -> BrowseItem:
    if parent is None:
        parent = "/".join([record.order_id, record.sku_folder, record.date])
    return BrowseItem(
        type="file",
        name=record.filename,
        path=f"{parent}/{record.filename}",
        recording=record,
    )


def listing_items(listing: FolderListing, segments: list[str]) -> list[BrowseItem]:
    """目录在前、文件在后，保持存储返回的顺序"""
    parent = "/".join(segments)
    items = [
        BrowseItem(
            type="folder",
            name=folder,
            path=f"{parent}/{folder}" if parent else folder,
        )
        for folder in listing.folders
    ]
    items.extend(_file_item(record, parent) for record in listing.files)
    return items


class RecordingBrowser:
    """录像浏览服务

    只读取元数据存储，不访问任何存储后端
    """

    def __init__(self, store: MetadataStore) -> None:
        self.store = store

    async def browse(self, path: Optional[str], offset: int = 0, limit: int = 20) -> BrowseResponse:
        """列出某一层级的目录和文件并分页

        Args:
            path: 以斜杠连接的层级路径
            offset: 偏移量
            limit: 每页数量

        Returns:
            BrowseResponse: list模式响应
        """
        segments = split_path(path)
        listing = await self.store.list_by_path(segments)
        items = listing_items(listing, segments)
        total = len(items)

        return BrowseResponse(
            mode="list",
            items=items[offset:offset + limit],
            current_path="/".join(segments),
            total=total,
            has_more=offset + limit < total,
        )

    async def search(self, query: str) -> BrowseResponse:
        """搜索录像，返回全部匹配结果，不分页"""
        records = await self.store.search(query)
        return BrowseResponse(
            mode="search",
            items=[_file_item(record) for record in records],
            total=len(records),
            has_more=False,
        )
