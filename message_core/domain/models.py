"""统一的消息与结果数据模型。

本模块定义了消息定位与变更引擎在各层之间共享的标准数据结构：

- LogEntry: 持久化聊天记录中的一条消息（权威数据）。
- ClientMessage: UI 层渲染的一条消息，id 为临时生成的标识符。
- ApiSettings: 调用方显式传入的凭据与 Provider 配置。
- MutationResult: 编辑/删除/重新生成的结构化结果。
- ChatMessage / ChatRequest / ChatResult: 重新生成时发给 LLM Provider 的请求与响应。
"""

from dataclasses import dataclass, field
from typing import Literal, Optional, Any, Dict, List


# 存储层角色标签；"model" 与 "assistant" 视为同一角色
StoredRole = Literal["user", "model", "assistant"]

# 定位时使用的逻辑角色
Role = Literal["user", "model"]

# UI 层的发送者标签
Sender = Literal["user", "bot"]


@dataclass
class LogEntry:
    """完整聊天记录中的一条消息。

    - global_index: 在完整、按追加顺序排列的记录中的位置。
    - is_first_mes: 角色卡开场白，永远不参与角色序号计算，也不能被修改。
    - timestamp_ms: 毫秒时间戳；旧数据可能缺失。
    """

    role: StoredRole
    text: str
    timestamp_ms: Optional[int]
    is_first_mes: bool
    global_index: int


@dataclass
class ClientMessage:
    """UI 渲染的消息。id 只在一次渲染周期内有效，每次变更后都会重新生成。"""

    id: str
    text: str
    sender: Sender
    timestamp: Optional[int] = None
    is_loading: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ApiSettings:
    """调用方显式传入的 API 凭据。

    引擎不读取任何全局状态：缺少 api_key 时所有变更操作直接失败。
    """

    api_key: Optional[str]
    provider: str = "openai-compatible"
    base_url: Optional[str] = None
    model: Optional[str] = None
    temperature: Optional[float] = None
    use_cloud_service: bool = False
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass
class MutationResult:
    """一次变更操作的结果。

    success 为 True 时 messages 为重新读取后的完整消息列表；
    失败时 error_code 取自 domain.exceptions 中的错误码。
    """

    success: bool
    messages: Optional[List[ClientMessage]] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    regenerated_text: Optional[str] = None


ChatRole = Literal["system", "user", "assistant"]


@dataclass
class ChatMessage:
    role: ChatRole
    content: str


@dataclass
class ChatRequest:
    """重新生成时发给 Provider 的完整请求。"""

    model: str
    messages: List[ChatMessage]
    temperature: float = 0.7
    max_tokens: Optional[int] = None


@dataclass
class ChatUsage:
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


@dataclass
class ChatResult:
    provider: str
    model: str
    content: str
    finish_reason: Optional[str] = None
    usage: Optional[ChatUsage] = None
    raw: Optional[dict] = None


@dataclass
class ChatStreamChunk:
    """流式返回中的一段增量文本。"""

    provider: str
    model: str
    delta: str
    finish_reason: Optional[str] = None
    raw: Optional[dict] = None
