"""角色序号计算。

角色序号（role index）是消息在同角色消息中的 1-based 位置，
开场白 (is_first_mes) 不计入。序号总是对完整记录重新计算，从不缓存，
因此之前的删除会自动反映在结果中，也与 UI 分页无关。
"""

from typing import Sequence

from message_core.domain.models import LogEntry, Role

NOT_FOUND = -1


def matches_role(stored_role: str, role: Role) -> bool:
    """存储层的 "model" 与 "assistant" 视为同一角色。"""

    if role == "user":
        return stored_role == "user"
    return stored_role in ("model", "assistant")


def is_countable(entry: LogEntry, role: Role) -> bool:
    return matches_role(entry.role, role) and not entry.is_first_mes


def role_index_of(log: Sequence[LogEntry], target_global_index: int, role: Role) -> int:
    """返回 target_global_index 处消息的角色序号，不匹配或为开场白时返回 -1。"""

    if target_global_index < 0 or target_global_index >= len(log):
        return NOT_FOUND
    counter = 0
    for i in range(target_global_index + 1):
        counted = is_countable(log[i], role)
        if counted:
            counter += 1
        if i == target_global_index:
            return counter if counted else NOT_FOUND
    return NOT_FOUND


def count_preceding(log: Sequence[LogEntry], global_index: int, role: Role) -> int:
    """global_index 之前同角色（不含开场白）的消息数量。"""

    return sum(1 for entry in log[:global_index] if is_countable(entry, role))


def role_entries(log: Sequence[LogEntry], role: Role) -> list[LogEntry]:
    return [entry for entry in log if is_countable(entry, role)]
