#!/usr/bin/env python3
"""开箱录像存证服务启动脚本

dev 模式带热重载；prod 模式固定单进程，
因为元数据写队列和历史录像迁移守卫都只在进程内生效
"""

import argparse
import os
import sys
from pathlib import Path
from typing import Any

# 添加项目根目录到Python路径
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from app.core.config import settings


def server_options(mode: str, host: str, port: int) -> dict[str, Any]:
    """构建传给 uvicorn.run 的参数

    Args:
        mode: dev 或 prod
        host: 监听地址
        port: 监听端口

    Returns:
        dict[str, Any]: uvicorn参数
    """
    options = {
        "host": host,
        "port": port,
        "log_level": settings.log_level.lower(),
        "access_log": True,
    }
    if mode == "dev":
        options["reload"] = True
    else:
        options["workers"] = 1
    return options


def print_banner(mode: str, host: str, port: int) -> None:
    """打印启动信息：持久化目标和本地录像目录"""
    print(f"📼 {settings.app_name} v{settings.app_version} ({mode})")
    print(f"💾 配置/元数据文档: {settings.persistence_backend}"
          + (f" ({settings.data_dir})" if settings.persistence_backend == "file" else ""))
    print(f"📁 默认本地录像目录: {settings.recordings_dir}")
    print(f"🎬 上传接口: http://{host}:{port}/api/save-media")
    if mode == "dev":
        print(f"📝 API文档: http://{host}:{port}/docs")

    if mode == "prod" and int(os.getenv("WORKERS", "1")) != 1:
        print("⚠️ 忽略WORKERS设置，元数据写入只能在单进程内串行化")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="开箱录像存证服务启动脚本")
    parser.add_argument(
        "--mode",
        choices=["dev", "prod"],
        default="dev",
        help="启动模式: dev(热重载) 或 prod(单进程)"
    )
    parser.add_argument(
        "--host",
        default=settings.host,
        help=f"服务器主机地址 (默认: {settings.host})"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=int(os.getenv("PORT", settings.port)),
        help=f"服务器端口，优先读取PORT环境变量 (默认: {settings.port})"
    )
    return parser


def main():
    """解析命令行参数并启动服务"""
    import uvicorn

    args = build_parser().parse_args()

    # 确保日志目录存在
    if settings.log_file:
        Path(settings.log_file).parent.mkdir(parents=True, exist_ok=True)

    print_banner(args.mode, args.host, args.port)
    uvicorn.run("app.main:app", **server_options(args.mode, args.host, args.port))


if __name__ == "__main__":
    main()
