"""存储功能路由模块

提供录像/照片上传保存接口
"""

from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from loguru import logger

from .models import SaveResult
from .service import MediaSaveService, get_media_save_service


router = APIRouter()


@router.post(
    "/save-media",
    response_model=SaveResult,
    response_model_exclude_none=True,
    summary="保存录像",
    description="把上传的视频或照片写入当前配置的存储后端，并记录订单号/SKU元数据"
)
async def save_media(
    file: UploadFile = File(..., description="录像或照片文件"),
    order_id: Optional[str] = Form(default=None, alias="orderId", description="订单号"),
    sku_id: Optional[str] = Form(default=None, alias="skuId", description="SKU"),
    notes: Optional[str] = Form(default=None, description="备注"),
    mime_type: Optional[str] = Form(default=None, alias="mimeType", description="MIME类型"),
    service: MediaSaveService = Depends(get_media_save_service)
) -> SaveResult:
    """保存录像

    Args:
        file: 上传的文件
        order_id: 订单号
        sku_id: SKU
        notes: 备注
        mime_type: MIME类型，未提供时使用上传文件的Content-Type
        service: 保存服务

    Returns:
        SaveResult: 保存结果

    Raises:
        ValidationError: 请求字段缺失或非法
        StorageError: 存储后端写入失败
        PersistError: 元数据写入失败
    """
    blob = await file.read()
    logger.debug(f"收到上传文件: {file.filename} ({len(blob)} bytes)")

    return await service.save(
        blob,
        order_id,
        sku_id=sku_id,
        notes=notes,
        mime_type=mime_type or file.content_type,
    )
