"""自定义异常类定义

定义应用中使用的各种自定义异常
每个异常携带HTTP状态码和错误类型，调用方可以据此区分出错的子系统
（配置、存储后端、元数据持久化）
"""

from fastapi import HTTPException
from typing import Any, Optional


class BaseAPIException(HTTPException):
    """API异常基类

    所有自定义API异常都应该继承这个类
    提供统一的异常处理接口
    """

    def __init__(
        self,
        status_code: int,
        detail: str,
        error_type: str = "APIError",
        headers: Optional[dict[str, Any]] = None
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.error_type = error_type


class ValidationError(BaseAPIException):
    """数据验证异常

    当请求数据或配置字段缺失、格式错误时抛出，用户可以自行修正
    """

    def __init__(
        self,
        detail: str = "数据验证失败",
        fields: Optional[list[str]] = None,
        error_type: str = "ValidationError"
    ):
        super().__init__(
            status_code=422,
            detail=detail,
            error_type=error_type
        )
        self.fields = fields or []


class ConfigIncompleteError(ValidationError):
    """存储配置不完整异常

    选择了某个存储后端但缺少它需要的凭据字段时抛出
    """

    def __init__(self, missing_fields: list[str], detail: Optional[str] = None):
        super().__init__(
            detail=detail or f"存储配置不完整，缺少字段: {', '.join(missing_fields)}",
            fields=missing_fields,
            error_type="ConfigIncompleteError"
        )
        self.missing_fields = missing_fields


class NotFoundError(BaseAPIException):
    """资源不存在异常

    当请求的录像记录或路径不存在时抛出
    """

    def __init__(self, detail: str = "资源不存在"):
        super().__init__(
            status_code=404,
            detail=detail,
            error_type="NotFoundError"
        )


class StorageError(BaseAPIException):
    """存储后端异常基类

    文件写入存储后端失败时抛出，backend 标明出错的后端类型
    """

    def __init__(
        self,
        detail: str,
        backend: str,
        status_code: int = 502,
        error_type: str = "StorageError"
    ):
        super().__init__(
            status_code=status_code,
            detail=detail,
            error_type=error_type
        )
        self.backend = backend


class LocalStorageError(StorageError):
    """本地文件系统写入失败"""

    def __init__(self, detail: str):
        super().__init__(
            detail=detail,
            backend="local",
            status_code=500,
            error_type="LocalStorageError"
        )


class UpstreamError(StorageError):
    """远程存储服务异常

    网络错误、超时、认证失败或远端返回非2xx状态时抛出
    """

    def __init__(
        self,
        detail: str,
        backend: str,
        upstream_status: Optional[int] = None,
        error_type: str = "UpstreamError"
    ):
        super().__init__(
            detail=detail,
            backend=backend,
            status_code=502,
            error_type=error_type
        )
        self.upstream_status = upstream_status


class UrlUpstreamError(UpstreamError):
    """远程上传接口（url后端）失败"""

    def __init__(self, detail: str, upstream_status: Optional[int] = None):
        super().__init__(
            detail=detail,
            backend="url",
            upstream_status=upstream_status,
            error_type="UrlUpstreamError"
        )


class StorjUpstreamError(UpstreamError):
    """S3兼容对象存储（storj后端）失败"""

    def __init__(self, detail: str, upstream_status: Optional[int] = None):
        super().__init__(
            detail=detail,
            backend="storj",
            upstream_status=upstream_status,
            error_type="StorjUpstreamError"
        )


class PersistError(BaseAPIException):
    """文档持久化异常

    配置或元数据文档无法写入底层介质时抛出（例如只读挂载），不允许被吞掉
    """

    def __init__(self, detail: str, key: Optional[str] = None):
        super().__init__(
            status_code=500,
            detail=detail,
            error_type="PersistError"
        )
        self.key = key
