"""日志配置模块

使用loguru统一配置终端和文件日志
"""

import sys

from loguru import logger

from .config import settings

LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level} | {name}:{function}:{line} | {message}"


def setup_logging() -> None:
    """配置日志输出

    终端始终输出；配置了 LOG_FILE 时额外写入按天轮转的JSON日志文件
    """
    level = "DEBUG" if settings.debug else settings.log_level.upper()

    logger.remove()
    logger.add(sys.stderr, level=level, format=LOG_FORMAT)

    if settings.log_file:
        logger.add(
            settings.log_file,
            rotation="1 day",
            retention="30 days",
            level=level,
            format=LOG_FORMAT,
            serialize=True
        )
