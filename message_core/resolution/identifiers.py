"""UI 消息标识符解析。

UI 层生成的消息 id 有两种约定：

- ``"<timestampMs>-<random>"``                   -> TimestampDashId
- ``"<conversationId>_<timestampMs>_<random>"``  -> ConversationUnderscoreId

id 不携带角色信息，也不保证永久唯一；这里只负责从中取出时间戳。
"""

import re
import time
from dataclasses import dataclass
from typing import Optional, Union
from uuid import uuid4


_DASH_PATTERN = re.compile(r"^(\d+)-")
_UNDERSCORE_PATTERN = re.compile(r"_(\d+)_")
_LEADING_DIGITS = re.compile(r"^\s*(\d+)")


@dataclass(frozen=True)
class TimestampDashId:
    raw: str
    timestamp_ms: int


@dataclass(frozen=True)
class ConversationUnderscoreId:
    raw: str
    timestamp_ms: int


MessageId = Union[TimestampDashId, ConversationUnderscoreId]


def parse_message_id(message_id: str | None) -> Optional[MessageId]:
    """按形状识别 id 约定；两种都不匹配时返回 None。"""

    if not message_id:
        return None
    m = _DASH_PATTERN.match(message_id)
    # 前缀为 0 时视为没有时间戳，继续尝试下划线形式
    if m and int(m.group(1)):
        return TimestampDashId(raw=message_id, timestamp_ms=int(m.group(1)))
    m = _UNDERSCORE_PATTERN.search(message_id)
    if m and int(m.group(1)):
        return ConversationUnderscoreId(raw=message_id, timestamp_ms=int(m.group(1)))
    return None


def extract_timestamp(message_id: str | None) -> Optional[int]:
    parsed = parse_message_id(message_id)
    return parsed.timestamp_ms if parsed is not None else None


def conversation_created_at(conversation_id: str | None) -> Optional[int]:
    """会话 id 本身由创建时间戳派生，取其开头的数字部分。"""

    if not conversation_id:
        return None
    m = _LEADING_DIGITS.match(conversation_id)
    return int(m.group(1)) if m else None


def now_ms() -> int:
    return int(time.time() * 1000)


def generate_message_id(timestamp_ms: Optional[int] = None) -> str:
    """生成新的 ``"<timestamp>-<random>"`` 形式的 id。"""

    ts = timestamp_ms or now_ms()
    return f"{ts}-{uuid4().hex[:13]}"
