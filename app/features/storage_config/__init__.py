"""存储配置功能模块

提供存储后端选择、凭据和路径的持久化与校验
"""

from .router import router
from .service import ConfigStore, get_config_store

__all__ = ["router", "ConfigStore", "get_config_store"]
