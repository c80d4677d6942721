#!/usr/bin/env python3
"""历史录像迁移脚本

扫描本地存储目录，把尚未登记的录像文件补录到元数据文档
"""

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Optional

from loguru import logger

# 添加项目根目录到Python路径
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from app.core.persistence import get_document_store
from app.features.recordings.migration import migrate_local_recordings
from app.features.recordings.store import MetadataStore
from app.features.storage_config.service import ConfigStore


async def run(root: Optional[Path], dry_run: bool) -> int:
    """执行迁移

    Args:
        root: 本地存储根目录，为空时使用当前存储配置中的目录
        dry_run: 只统计不写入

    Returns:
        int: 新增（或将要新增）的记录数
    """
    document_store = get_document_store()
    config_store = ConfigStore(document_store)
    store = MetadataStore(document_store)

    root = root or await config_store.get_local_root()
    logger.info(f"扫描本地存储目录: {root}")

    return await migrate_local_recordings(store, root, dry_run=dry_run)


def main():
    """主函数"""
    # 配置日志
    logger.remove()  # 移除默认处理器
    logger.add(
        sys.stdout,
        level="INFO",
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | <level>{message}</level>"
    )

    parser = argparse.ArgumentParser(description="把本地已有录像补录到元数据")
    parser.add_argument(
        "--root",
        type=Path,
        default=None,
        help="本地存储根目录（默认读取存储配置）"
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="只统计将要补录的文件数量，不写入元数据"
    )
    args = parser.parse_args()

    try:
        count = asyncio.run(run(args.root, args.dry_run))
    except Exception as e:
        logger.error(f"迁移失败: {e}")
        sys.exit(1)

    if args.dry_run:
        logger.info(f"将要补录 {count} 条录像记录")
    else:
        logger.info(f"✅ 补录完成，共 {count} 条录像记录")


if __name__ == "__main__":
    main()
