"""配置管理模块。

支持从 .env、config.yaml 以及环境变量加载配置。
"""

import os
import warnings
from pathlib import Path
from typing import Any, Dict

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _load_config_from_yaml() -> Dict[str, Any]:
    """从 config.yaml 加载配置（若存在）。"""
    candidates = []
    explicit = os.getenv("MESSAGE_CORE_CONFIG_FILE")
    if explicit:
        candidates.append(Path(explicit).expanduser())
    candidates.extend([
        Path.cwd() / "config.yaml",
        Path(__file__).resolve().parents[2] / "config.yaml",
        Path(__file__).resolve().parents[1] / "config.yaml",
    ])

    seen: set[Path] = set()
    for path in candidates:
        if not path or path in seen:
            continue
        seen.add(path)
        try:
            if path.exists():
                data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
                if isinstance(data, dict):
                    return data
                warnings.warn(f"Config file {path} is not a mapping, ignored")
        except Exception as exc:
            warnings.warn(f"Failed to read config file {path}: {exc}")
    return {}


class Settings(BaseSettings):
    """配置设置（使用 Pydantic）。"""

    # ---- 存储与日志 ----
    storage_root: str = Field(default=".storage", description="聊天记录存储根目录")
    log_dir: str = Field(default="logs", description="日志目录")
    log_redact_content: bool = Field(default=False, description="是否脱敏日志内容")
    http_timeout: float = Field(default=30.0, ge=1.0, description="HTTP 超时时间（秒）")

    # ---- 重新生成时使用的默认 Provider ----
    default_provider: str = Field(default="openai-compatible", description="默认 Provider 名称")
    default_base_url: str = Field(
        default="https://api.openai.com/v1",
        description="OpenAI 兼容接口的基础URL",
    )
    default_model: str = Field(default="gpt-4o-mini", description="重新生成使用的模型")
    default_temperature: float = Field(default=0.7, ge=0.0, le=2.0)

    # ---- 消息定位阈值 ----
    exact_match_tolerance_ms: int = Field(default=500, ge=0, description="时间戳精确匹配容差")
    close_match_tolerance_ms: int = Field(default=10_000, ge=0, description="时间戳近似匹配容差")
    max_page_size: int = Field(default=50, ge=1, description="判断分页视图时假定的最大页大小")
    close_text_min_length: int = Field(default=20, ge=0, description="前缀匹配要求的最短文本长度")
    close_text_prefix_length: int = Field(default=100, ge=1, description="前缀匹配比较的字符数")
    recent_conversation_age_ms: int = Field(
        default=3_600_000,
        ge=0,
        description="消息距离会话创建超过该时长时才启用近期位置估计",
    )
    recent_tail_size: int = Field(default=5, ge=1, description="近期位置估计检查的末尾消息数")
    recent_match_tolerance_ms: int = Field(default=30_000, ge=0, description="近期位置估计的时间容差")

    model_config = SettingsConfigDict(
        env_prefix="MESSAGE_CORE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @staticmethod
    def _config_source() -> Dict[str, Any]:
        return _load_config_from_yaml()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            cls._config_source,
            file_secret_settings,
        )


settings = Settings()
