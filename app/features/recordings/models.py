"""录像元数据数据模型

定义单条录像记录、元数据文档以及浏览/搜索接口的响应模型
"""

import math
from typing import Any, Literal, Optional

from pydantic import Field, field_validator

from app.features.storage_config.models import StorageType
from app.shared.schemas import CamelModel

DEFAULT_SKU = "default"


class RecordingRecord(CamelModel):
    """录像记录

    每个保存的视频或图片对应一条记录
    """

    order_id: str = Field(min_length=1, description="订单号，一级分组键")
    sku_id: Optional[str] = Field(default=None, description="SKU，二级分组键")
    notes: Optional[str] = Field(default=None, description="备注")
    date: str = Field(description="保存日期 YYYY-MM-DD")
    timestamp: int = Field(description="保存时间（毫秒时间戳）")
    storage_type: StorageType = Field(description="保存该文件的存储后端")
    path: str = Field(description="后端内的相对定位（相对路径、对象键或远程标识）")
    url: Optional[str] = Field(default=None, description="可直接访问的完整URL")
    filename: str = Field(description="文件名")
    mime_type: Optional[str] = Field(default=None, description="MIME类型")

    @field_validator("timestamp", mode="before")
    @classmethod
    def truncate_fractional_timestamp(cls, value: Any) -> Any:
        """旧数据用文件mtime写入的毫秒时间戳带小数，截断为整数"""
        if isinstance(value, float) and math.isfinite(value):
            return int(value)
        return value

    @property
    def sku_folder(self) -> str:
        """浏览层级中的SKU目录名，未填写SKU时归入default"""
        return self.sku_id or DEFAULT_SKU


class MetadataDocument(CamelModel):
    """元数据文档

    recordings 按时间倒序排列，新记录总是插入到开头
    """

    recordings: list[RecordingRecord] = Field(default_factory=list)
    last_updated: int = Field(default=0, description="最后写入时间（毫秒时间戳）")
    unparsed_records: list[Any] = Field(
        default_factory=list,
        exclude=True,
        description="校验失败的原始记录，写回时原样保留"
    )


class FolderListing(CamelModel):
    """虚拟目录层级的一层"""

    folders: list[str] = Field(default_factory=list)
    files: list[RecordingRecord] = Field(default_factory=list)


class RecordingPage(CamelModel):
    """按时间倒序分页的记录列表"""

    recordings: list[RecordingRecord]
    total: int
    has_more: bool


class BrowseItem(CamelModel):
    """浏览接口中的一项，目录或文件"""

    type: Literal["folder", "file"]
    name: str
    path: str
    recording: Optional[RecordingRecord] = None


class BrowseResponse(CamelModel):
    """浏览/搜索接口响应"""

    mode: Literal["list", "search"]
    items: list[BrowseItem]
    current_path: Optional[str] = None
    total: int
    has_more: bool = False


class RecentScansResponse(CamelModel):
    """最近录像接口响应"""

    success: bool = True
    recordings: list[RecordingRecord]
