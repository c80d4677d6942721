"""存储功能模块

提供本地、远程上传接口和S3兼容对象存储三种后端的录像保存
"""

from .router import router
from .service import MediaSaveService, get_media_save_service

__all__ = ["router", "MediaSaveService", "get_media_save_service"]
