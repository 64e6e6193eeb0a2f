"""消息定位层：角色序号计算、id 解析与多策略定位。"""

from .identifiers import extract_timestamp, generate_message_id, parse_message_id
from .resolver import MessageResolver, ResolverConfig, resolve
from .role_index import NOT_FOUND, role_index_of

__all__ = [
    "MessageResolver",
    "NOT_FOUND",
    "ResolverConfig",
    "extract_timestamp",
    "generate_message_id",
    "parse_message_id",
    "resolve",
    "role_index_of",
]
