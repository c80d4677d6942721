"""Redis连接模块

提供Redis异步连接池和JSON文档读写
在只读文件系统的部署环境中，配置文档和元数据文档保存在Redis中
"""

import json
from datetime import datetime
from typing import Any, Optional

import redis.asyncio as redis
from loguru import logger

from .config import settings


class RedisManager:
    """Redis管理器

    管理Redis连接池，提供带命名空间的JSON文档读写方法
    """

    def __init__(
        self,
        url: Optional[str] = None,
        namespace: Optional[str] = None
    ) -> None:
        """初始化Redis管理器

        创建Redis连接池，配置连接参数
        如果Redis URL未配置，则跳过初始化

        Args:
            url: Redis连接URL，默认读取配置
            namespace: 键名前缀，默认读取配置
        """
        self.redis_pool = None
        self.redis_client = None
        self.namespace = namespace or settings.redis_namespace

        url = url or settings.async_redis_url
        if not url:
            logger.warning("Redis URL未配置，跳过Redis初始化")
            return

        self.redis_pool = redis.ConnectionPool.from_url(
            url,
            max_connections=20,  # 最大连接数
            retry_on_timeout=True,  # 超时重试
            socket_keepalive=True,  # 保持连接
            health_check_interval=30,  # 健康检查间隔（秒）
            decode_responses=True,  # 自动解码响应
        )

        self.redis_client = redis.Redis(connection_pool=self.redis_pool)

        logger.info("Redis连接池已初始化")

    async def ping(self) -> bool:
        """检查Redis连接状态

        Returns:
            bool: 连接是否正常
        """
        if not self.redis_client:
            logger.warning("Redis未初始化，无法检查连接")
            return False

        try:
            await self.redis_client.ping()
            return True
        except Exception as e:
            logger.error(f"Redis连接检查失败: {e}")
            return False

    async def close(self) -> None:
        """关闭Redis连接

        在应用关闭时调用，清理资源
        """
        if self.redis_client:
            await self.redis_client.aclose()
            logger.info("Redis连接已关闭")
        else:
            logger.info("Redis未初始化，无需关闭")

    def _serialize_value(self, value: Any) -> str:
        """序列化值为JSON字符串

        处理datetime等特殊类型的序列化

        Args:
            value: 要序列化的值

        Returns:
            str: JSON字符串
        """
        def json_serializer(obj: Any) -> str:
            """JSON序列化器，处理特殊类型"""
            if isinstance(obj, datetime):
                return obj.isoformat()
            raise TypeError(f"Object of type {type(obj)} is not JSON serializable")

        return json.dumps(value, default=json_serializer, ensure_ascii=False)

    def build_key(self, name: str) -> str:
        """构建带命名空间的键名

        格式: namespace:name
        """
        return f"{self.namespace}:{name}"

    async def get_json(self, name: str) -> Optional[Any]:
        """读取JSON文档

        Args:
            name: 文档名（不含命名空间）

        Returns:
            Optional[Any]: 解析后的文档，不存在返回None

        Raises:
            RuntimeError: Redis未初始化
            json.JSONDecodeError: 文档内容不是合法JSON
            redis.RedisError: 连接或命令执行失败
        """
        if not self.redis_client:
            raise RuntimeError("Redis未初始化，无法读取文档")

        value = await self.redis_client.get(self.build_key(name))
        if value is None:
            return None
        return json.loads(value)

    async def set_json(self, name: str, value: Any) -> None:
        """写入JSON文档，整体替换旧值

        Args:
            name: 文档名（不含命名空间）
            value: 文档内容

        Raises:
            RuntimeError: Redis未初始化
            redis.RedisError: 连接或命令执行失败
        """
        if not self.redis_client:
            raise RuntimeError("Redis未初始化，无法写入文档")

        await self.redis_client.set(self.build_key(name), self._serialize_value(value))


# 全局Redis管理器实例
redis_manager = RedisManager()
