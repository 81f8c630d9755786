"""
日志配置 - 控制台 + 可选文件输出
"""

from __future__ import annotations

import logging
import sys

from .runtime_config import LoggingConfig

LOG_FILE_NAME = "leonardo.log"


def setup_logging(config: LoggingConfig | None = None) -> None:
    """配置根logger（重复调用会替换已有handler）"""
    config = config or LoggingConfig()
    level = getattr(logging, config.log_level.upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    formatter = logging.Formatter(config.log_format, datefmt="%Y-%m-%d %H:%M:%S")

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root.addHandler(console_handler)

    if config.log_to_file:
        config.log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(config.log_dir / LOG_FILE_NAME, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    # httpx 的请求日志包含带 token 的URL
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
