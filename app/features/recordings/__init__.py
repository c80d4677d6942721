"""录像元数据功能模块

提供录像记录的持久化、虚拟目录浏览、搜索和历史录像迁移
"""

from .router import router
from .store import MetadataStore, get_metadata_store

__all__ = ["router", "MetadataStore", "get_metadata_store"]
