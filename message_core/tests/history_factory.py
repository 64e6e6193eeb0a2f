from typing import List, Optional, Sequence

from message_core.domain.models import ClientMessage, LogEntry

BASE_TS = 1_700_000_000_000


def make_log(rows: Sequence[tuple]) -> List[LogEntry]:
    """rows: (role, text, timestamp[, is_first_mes])"""

    log = []
    for i, row in enumerate(rows):
        role, text, ts = row[:3]
        first = row[3] if len(row) > 3 else False
        log.append(LogEntry(role=role, text=text, timestamp_ms=ts, is_first_mes=first, global_index=i))
    return log


def make_view(entries: Sequence[LogEntry], id_prefix: Optional[str] = None) -> List[ClientMessage]:
    """把记录转换成 UI 视图；id_prefix 为空时 id 携带时间戳。"""

    view = []
    for e in entries:
        mid = f"{id_prefix}-{e.global_index}" if id_prefix else f"{e.timestamp_ms}-ui"
        view.append(
            ClientMessage(id=mid, text=e.text, sender="user" if e.role == "user" else "bot", timestamp=e.timestamp_ms)
        )
    return view


def alternating_log(count: int, base: int = BASE_TS) -> List[LogEntry]:
    """一条开场白后用户/AI 交替，间隔一分钟。"""

    rows = []
    user_n = ai_n = 0
    for i in range(count):
        ts = base + i * 60_000
        if i == 0:
            rows.append(("model", "Hello! I am the test character.", ts, True))
        elif i % 2 == 1:
            user_n += 1
            rows.append(("user", f"Test user message #{user_n}", ts))
        else:
            ai_n += 1
            rows.append(("model", f"Test AI reply #{ai_n}", ts))
    return make_log(rows)
