"""
运行期配置 - 读取 config/leonardo.yaml

职责：
- 加载机器人凭据/存储路径/尺寸上限/超时/并发等运行参数
- 提供环境变量覆盖机制（前缀 LEONARDO_，嵌套分隔符 __，支持 .env）
- 类型安全的配置访问
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, SecretStr
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict


class BotConfig(BaseModel):
    """聊天机器人配置"""

    token: SecretStr = SecretStr("")
    api_base: str = "https://api.telegram.org"
    poll_timeout_sec: int = 30
    poll_retry_sec: float = 5.0


class StoreConfig(BaseModel):
    """版本库存储配置"""

    repo_path: Path = Path("storage/artifacts")
    artifacts_dir: str = "artifacts"
    author_name: str = "Leonardo"
    author_email: str = "leonardo@localhost"
    push_remote: str | None = None
    push_branch: str | None = None
    link_template: str | None = None


class FetchConfig(BaseModel):
    """下载配置"""

    max_image_bytes: int = 10 * 1024 * 1024
    allowed_formats: list[str] = Field(
        default_factory=lambda: ["png", "jpeg", "webp", "gif", "bmp"]
    )
    chunk_size: int = 64 * 1024


class TraceConfig(BaseModel):
    """描摹配置"""

    backend: str = "vtracer"
    potrace_path: str = "potrace"
    # 产物格式: svg | vd（经 svg2vd 转为 Android VectorDrawable）
    output_format: str = "svg"
    svg2vd_path: str = "svg2vd"
    threshold: int = 128
    max_pixels: int = 16_000_000
    # vtracer 参数
    mode: str = "spline"
    filter_speckle: int = 4
    corner_threshold: int = 60
    length_threshold: float = 4.0
    splice_threshold: int = 45
    path_precision: int = 3


class TimeoutConfig(BaseModel):
    """超时配置"""

    fetch_sec: float = 30
    trace_sec: float = 60
    git_command_sec: float = 30
    send_sec: float = 20
    submission_sec: float = 180


class RetryConfig(BaseModel):
    """重试配置"""

    max_retries: int = 2
    retry_backoff_ms: int = 1000
    retry_backoff_max_ms: int = 10000


class ConcurrencyConfig(BaseModel):
    """并发配置"""

    max_workers: int = 4
    max_queue: int = 32
    trace_threads: int = 2


class ResponderConfig(BaseModel):
    """回复配置"""

    attach_artifact: bool = True


class LoggingConfig(BaseModel):
    """日志配置"""

    log_level: str = "INFO"
    log_format: str = "%(asctime)s | %(levelname)-8s | %(name)s - %(message)s"
    log_to_file: bool = False
    log_dir: Path = Path("storage/logs")


SECTIONS = (
    "bot",
    "store",
    "fetch",
    "trace",
    "timeouts",
    "retries",
    "concurrency",
    "responder",
    "logging",
)


class RuntimeConfig(BaseSettings):
    """运行期配置（支持环境变量覆盖）"""

    bot: BotConfig = Field(default_factory=BotConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    fetch: FetchConfig = Field(default_factory=FetchConfig)
    trace: TraceConfig = Field(default_factory=TraceConfig)
    timeouts: TimeoutConfig = Field(default_factory=TimeoutConfig)
    retries: RetryConfig = Field(default_factory=RetryConfig)
    concurrency: ConcurrencyConfig = Field(default_factory=ConcurrencyConfig)
    responder: ResponderConfig = Field(default_factory=ResponderConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = SettingsConfigDict(
        env_prefix="LEONARDO_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """优先级：环境变量 > .env > YAML/构造参数 > 默认值"""
        return env_settings, dotenv_settings, init_settings, file_secret_settings

    @classmethod
    def from_yaml(cls, yaml_path: str | Path) -> RuntimeConfig:
        """从YAML文件加载配置（环境变量优先于文件中的同名字段）"""
        path = Path(yaml_path)
        if not path.exists():
            return cls()

        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        runtime_opts = data.get("runtime_options", data)

        # YAML 内容作为构造参数传入，优先级低于环境变量，按字段深度合并
        config = cls(**{
            key: cls._extract(runtime_opts, key)
            for key in SECTIONS
            if key in runtime_opts
        })

        config._resolve_paths(base_dir=path.parent)
        return config

    @staticmethod
    def _extract(data: dict[str, Any], key: str) -> dict[str, Any]:
        """提取并展平配置（兼容 {default: 值} 写法）"""
        section = data.get(key) or {}
        result = {}
        for k, v in section.items():
            if isinstance(v, dict) and "default" in v:
                result[k] = v["default"]
            elif not isinstance(v, dict):
                result[k] = v
        return result

    def _resolve_paths(self, base_dir: Path) -> None:
        """解析相对路径配置为绝对路径（基于配置文件所在目录）"""
        if not self.store.repo_path.is_absolute():
            self.store.repo_path = (base_dir / self.store.repo_path).resolve()
        if not self.logging.log_dir.is_absolute():
            self.logging.log_dir = (base_dir / self.logging.log_dir).resolve()


# 全局配置实例
_config: RuntimeConfig | None = None

DEFAULT_CONFIG_PATH = Path("config/leonardo.yaml")


def get_config() -> RuntimeConfig:
    """获取全局配置（惰性加载）"""
    global _config
    if _config is None:
        _config = RuntimeConfig.from_yaml(DEFAULT_CONFIG_PATH)
    return _config


def reload_config(yaml_path: str | Path | None = None) -> RuntimeConfig:
    """重新加载配置"""
    global _config
    _config = RuntimeConfig.from_yaml(yaml_path or DEFAULT_CONFIG_PATH)
    return _config
