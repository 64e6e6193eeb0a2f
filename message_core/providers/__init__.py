"""LLM Provider 集成层。

该包下的模块负责：
- 定义 Provider 抽象接口 (base)。
- 提供 OpenAI 兼容接口的具体实现 (openai_compatible)。

只有存储层的"重新生成"会用到 Provider，定位与变更引擎本身从不调用 LLM。
"""

from typing import Optional

from message_core.config.settings import Settings, settings as default_settings
from message_core.domain.models import ApiSettings
from message_core.providers.base import ProviderClient
from message_core.providers.openai_compatible import OpenAICompatibleClient


def create_provider(api_settings: ApiSettings, cfg: Optional[Settings] = None) -> ProviderClient:
    """根据调用方传入的 ApiSettings 创建 Provider 实例。"""

    cfg = cfg or default_settings
    return OpenAICompatibleClient(
        api_settings,
        base_url=cfg.default_base_url,
        timeout=cfg.http_timeout,
    )
