"""核心配置模块

处理环境变量读取，决定元数据文档的持久化目标（本地文件或Redis）
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """应用配置类

    自动从环境变量读取配置。部署在只读文件系统的平台上时，
    将 PERSISTENCE_BACKEND 设置为 redis，配置和元数据文档改为写入Redis
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # 应用配置
    app_name: str = Field(default="Unboxing Recorder Backend", description="应用名称")
    app_version: str = Field(default="0.1.0", description="应用版本")
    debug: bool = Field(default=False, description="调试模式")
    host: str = Field(default="0.0.0.0", description="服务器主机")
    port: int = Field(default=8000, description="服务器端口")
    cors_origins: list[str] = Field(
        default=[
            "http://localhost:3000",
            "http://localhost:8000",
            "http://127.0.0.1:3000",
            "http://127.0.0.1:8000",
        ],
        description="允许跨域访问的前端地址"
    )

    # 日志配置
    log_level: str = Field(default="INFO", description="日志级别")
    log_file: Optional[str] = Field(
        default=None,
        description="日志文件路径，例如 logs/app_{time:YYYY-MM-DD}.log，为空时只输出到终端"
    )

    # 持久化配置
    persistence_backend: Literal["file", "redis"] = Field(
        default="file",
        description="配置和元数据文档的存放位置: file(本地JSON文件) 或 redis(外部存储)"
    )
    data_dir: Path = Field(
        default_factory=Path.cwd,
        description="本地JSON文档所在目录"
    )
    recordings_dir: Path = Field(
        default_factory=lambda: Path.cwd() / "recordings",
        description="本地录像默认保存目录"
    )
    config_key: str = Field(default="config", description="存储配置文档的键名")
    metadata_key: str = Field(default="recordings-metadata", description="录像元数据文档的键名")

    # Redis配置
    redis_url: Optional[str] = Field(default=None, description="Redis连接URL")
    redis_namespace: str = Field(default="unboxing", description="Redis键名前缀")

    # 存储后端配置
    upstream_timeout: float = Field(default=30.0, gt=0, description="远程上传超时时间（秒）")
    storj_region: str = Field(default="auto", description="S3兼容服务区域名称")

    # 元数据写入重试配置
    metadata_write_attempts: int = Field(default=3, ge=1, description="元数据写入最大尝试次数")
    metadata_backoff_base: float = Field(default=1.0, ge=0, description="指数退避基数（秒）")
    metadata_backoff_jitter: float = Field(default=1.0, ge=0, description="退避随机抖动上限（秒）")

    @computed_field
    @property
    def async_redis_url(self) -> Optional[str]:
        """处理Redis URL确保兼容性

        部分平台注入的Redis地址不带协议前缀，这里统一补齐redis://

        Returns:
            Optional[str]: Redis连接URL，如果未配置则返回None
        """
        if not self.redis_url:
            return None

        if not self.redis_url.startswith(("redis://", "rediss://")):
            return f"redis://{self.redis_url}"
        return self.redis_url


@lru_cache
def get_settings() -> Settings:
    """获取应用配置单例

    使用lru_cache确保配置只被加载一次

    Returns:
        Settings: 应用配置实例
    """
    return Settings()


# 导出配置实例供其他模块使用
settings = get_settings()
