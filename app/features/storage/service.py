"""存储服务模块

保存流程：读取存储配置 -> 选择后端写入文件 -> 写入元数据记录。
后端写入失败时不会产生元数据记录
"""

from typing import Callable, Optional

from fastapi import Depends
from loguru import logger

from app.features.recordings.models import RecordingRecord
from app.features.recordings.store import MetadataStore, get_metadata_store
from app.features.storage_config.models import StorageConfig
from app.features.storage_config.service import ConfigStore, get_config_store
from app.shared.exceptions import ValidationError
from app.shared.schemas import clean_text

from .adapters import StorageAdapter, get_storage_adapter, validate_key_segment
from .models import SaveResult

AdapterFactory = Callable[[StorageConfig], StorageAdapter]


class MediaSaveService:
    """录像保存服务"""

    def __init__(
        self,
        config_store: ConfigStore,
        metadata_store: MetadataStore,
        adapter_factory: AdapterFactory = get_storage_adapter
    ) -> None:
        self.config_store = config_store
        self.metadata_store = metadata_store
        self.adapter_factory = adapter_factory

    async def save(
        self,
        blob: bytes,
        order_id: Optional[str],
        sku_id: Optional[str] = None,
        notes: Optional[str] = None,
        mime_type: Optional[str] = None
    ) -> SaveResult:
        """保存一段录像或一张照片

        Args:
            blob: 文件内容
            order_id: 订单号（必填）
            sku_id: SKU
            notes: 备注
            mime_type: MIME类型

        Returns:
            SaveResult: 保存结果

        Raises:
            ValidationError: 订单号缺失、标识符非法或文件为空
            ConfigIncompleteError: 当前后端缺少必填配置
            StorageError: 后端写入失败（此时不写元数据）
            PersistError: 文件已保存但元数据写入重试后仍失败
        """
        order_id = clean_text(order_id)
        sku_id = clean_text(sku_id)
        notes = clean_text(notes)
        mime_type = clean_text(mime_type)

        if not order_id:
            raise ValidationError("缺少订单号 orderId", fields=["orderId"])
        validate_key_segment("orderId", order_id)
        if sku_id:
            validate_key_segment("skuId", sku_id)
        if not blob:
            raise ValidationError("文件内容为空", fields=["file"])

        config = await self.config_store.get()
        adapter = self.adapter_factory(config)

        logger.info(
            f"保存录像: orderId={order_id} skuId={sku_id or '-'} "
            f"后端={adapter.storage_type.value} 大小={len(blob)} bytes"
        )
        stored = await adapter.store(
            blob,
            order_id,
            sku_id=sku_id,
            mime_type=mime_type,
            notes=notes,
        )

        record = RecordingRecord(
            order_id=order_id,
            sku_id=sku_id,
            notes=notes,
            date=stored.date,
            timestamp=stored.timestamp,
            storage_type=stored.storage_type,
            path=stored.path,
            url=stored.url,
            filename=stored.filename,
            mime_type=stored.mime_type,
        )
        await self.metadata_store.add_recording(record)

        return SaveResult(
            success=True,
            path=stored.path,
            url=stored.url,
            storage=stored.storage_type,
            filename=stored.filename,
        )


def get_media_save_service(
    config_store: ConfigStore = Depends(get_config_store),
    metadata_store: MetadataStore = Depends(get_metadata_store)
) -> MediaSaveService:
    """保存服务的依赖注入函数"""
    return MediaSaveService(config_store, metadata_store)
