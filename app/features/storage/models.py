"""存储功能数据模型

定义存储后端写入结果和保存接口的响应模型
"""

from typing import Optional

from pydantic import Field

from app.features.storage_config.models import StorageType
from app.shared.schemas import CamelModel


class StoredMedia(CamelModel):
    """存储后端写入结果

    date 和 timestamp 与对象键中的日期一致，元数据记录直接使用
    """

    path: str = Field(description="后端内的相对定位")
    url: Optional[str] = Field(default=None, description="可直接访问的完整URL")
    filename: str = Field(description="保存后的文件名")
    storage_type: StorageType = Field(description="存储后端类型")
    date: str = Field(description="保存日期 YYYY-MM-DD")
    timestamp: int = Field(description="保存时间（毫秒时间戳）")
    mime_type: Optional[str] = Field(default=None, description="MIME类型")


class SaveResult(CamelModel):
    """保存接口响应"""

    success: bool = True
    path: str
    url: Optional[str] = None
    storage: StorageType
    filename: str
