"""存储配置数据模型

定义当前存储后端及其凭据、路径和录像限制
"""

from enum import Enum
from typing import Optional

from pydantic import Field

from app.shared.schemas import CamelModel

DEFAULT_MAX_DURATION = 300  # 秒
DEFAULT_MAX_FILE_SIZE = 100  # MB

MAX_DURATION_RANGE = (10, 3600)
MAX_FILE_SIZE_RANGE = (1, 1000)


class StorageType(str, Enum):
    """存储后端类型"""

    LOCAL = "local"
    URL = "url"
    STORJ = "storj"


class StorageConfig(CamelModel):
    """存储配置文档

    整个文档在每次保存配置时整体替换
    """

    storage_type: StorageType = Field(default=StorageType.LOCAL, description="当前存储后端")

    # 本地存储
    local_path: Optional[str] = Field(default=None, description="本地保存目录")

    # 远程上传接口
    save_url: Optional[str] = Field(default=None, description="上传接口地址")
    read_url: Optional[str] = Field(default=None, description="读取接口地址")
    api_key: Optional[str] = Field(default=None, description="上传接口Bearer令牌")

    # S3兼容对象存储
    storj_access_key: Optional[str] = Field(default=None, description="访问密钥ID")
    storj_secret_key: Optional[str] = Field(default=None, description="秘密访问密钥")
    storj_endpoint: Optional[str] = Field(default=None, description="服务端点URL")
    storj_bucket: Optional[str] = Field(default=None, description="存储桶名称")

    # 录像限制，由采集端执行
    max_duration: Optional[float] = Field(default=DEFAULT_MAX_DURATION, description="最长录制时间（秒）")
    max_file_size: Optional[float] = Field(default=DEFAULT_MAX_FILE_SIZE, description="最大文件大小（MB）")
