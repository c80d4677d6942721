"""共享的Pydantic模式定义

定义统一的API响应格式和通用数据模型
"""

from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# 泛型类型变量，用于响应数据
DataType = TypeVar('DataType')


def clean_text(value: Optional[str]) -> Optional[str]:
    """去掉首尾空白，空字符串视为未填写"""
    if value is None:
        return None
    value = value.strip()
    return value or None


class CamelModel(BaseModel):
    """驼峰命名模型基类

    持久化的JSON文档和前端接口都使用驼峰键名（orderId、storageType），
    Python代码中使用下划线属性名，两种写法都可以用来构造模型
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_document(self) -> dict:
        """转换为可直接写入JSON文档的字典（驼峰键名，省略空字段）"""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class APIResponse(BaseModel, Generic[DataType]):
    """统一API响应格式

    健康检查、错误响应等通用接口使用这种格式
    """

    success: bool = Field(description="操作是否成功")
    data: Optional[DataType] = Field(default=None, description="响应数据")
    message: str = Field(description="响应消息")
    code: int = Field(description="HTTP状态码")
    error_type: Optional[str] = Field(default=None, description="错误类型")


class HealthCheckResponse(BaseModel):
    """健康检查响应

    包含应用版本和持久化层状态
    """

    status: str = Field(description="服务状态")
    timestamp: str = Field(description="检查时间")
    version: str = Field(description="应用版本")
    persistence_backend: str = Field(description="文档持久化目标")
    persistence: bool = Field(description="持久化层是否可用")
