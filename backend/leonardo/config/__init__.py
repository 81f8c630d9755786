"""
配置层 - 加载运行期配置与日志设置

职责：
- 加载 config/leonardo.yaml（运行期参数）
- 环境变量 / .env 覆盖（机器人凭据等敏感项）
- 提供类型安全的配置访问接口
"""

from .logging_config import setup_logging
from .runtime_config import RuntimeConfig, get_config, reload_config

__all__ = [
    "RuntimeConfig",
    "get_config",
    "reload_config",
    "setup_logging",
]
