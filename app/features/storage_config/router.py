"""存储配置路由模块

提供存储后端配置的读取和保存接口
"""

from fastapi import APIRouter, Depends
from loguru import logger

from .models import StorageConfig
from .service import ConfigStore, get_config_store


router = APIRouter()


@router.get(
    "/settings",
    response_model=StorageConfig,
    response_model_exclude_none=True,
    summary="获取存储配置",
    description="返回当前生效的存储后端配置，未保存过时返回默认配置"
)
async def read_settings(
    config_store: ConfigStore = Depends(get_config_store)
) -> StorageConfig:
    """获取存储配置"""
    return await config_store.get()


@router.post(
    "/settings",
    response_model=StorageConfig,
    response_model_exclude_none=True,
    summary="保存存储配置",
    description="按所选后端校验必填字段后整体替换存储配置"
)
async def save_settings(
    config: StorageConfig,
    config_store: ConfigStore = Depends(get_config_store)
) -> StorageConfig:
    """保存存储配置

    Args:
        config: 新的存储配置
        config_store: 存储配置服务

    Returns:
        StorageConfig: 规范化后的配置

    Raises:
        ValidationError: 配置字段缺失或格式错误
        PersistError: 配置文档写入失败
    """
    logger.info(f"保存存储配置: {config.storage_type.value}")
    return await config_store.set(config)
