"""消息定位：把 UI 的临时消息 id 映射为完整记录中的角色序号。

定位由一组按优先级排列的独立策略组成，每个策略返回角色序号或 None，
第一个给出结果的策略胜出：

1. timestamp: 从 id 中取出时间戳，与同角色消息的时间戳做精确/近似匹配。
2. content:   借助 UI 当前渲染的消息列表（可能是分页后的子集），
              按文本内容与同角色相对位置匹配。
3. recency:   对创建已久的会话，只在最后几条同角色消息中按宽松时间容差查找。

全部失败时返回 -1，调用方不得继续执行任何变更。
"""

from dataclasses import dataclass
from typing import Callable, Optional, Sequence, Tuple

from message_core.config.settings import Settings
from message_core.domain.models import ClientMessage, LogEntry, Role
from message_core.infrastructure.logging.logger import logger, preview
from .identifiers import conversation_created_at, extract_timestamp
from .role_index import NOT_FOUND, count_preceding, is_countable, role_index_of


@dataclass(frozen=True)
class ResolverConfig:
    """定位阈值，单位为毫秒（max_page_size 等计数除外）。"""

    exact_match_tolerance_ms: int = 500
    close_match_tolerance_ms: int = 10_000
    max_page_size: int = 50
    close_text_min_length: int = 20
    close_text_prefix_length: int = 100
    recent_conversation_age_ms: int = 3_600_000
    recent_tail_size: int = 5
    recent_match_tolerance_ms: int = 30_000

    @classmethod
    def from_settings(cls, s: Settings) -> "ResolverConfig":
        return cls(
            exact_match_tolerance_ms=s.exact_match_tolerance_ms,
            close_match_tolerance_ms=s.close_match_tolerance_ms,
            max_page_size=s.max_page_size,
            close_text_min_length=s.close_text_min_length,
            close_text_prefix_length=s.close_text_prefix_length,
            recent_conversation_age_ms=s.recent_conversation_age_ms,
            recent_tail_size=s.recent_tail_size,
            recent_match_tolerance_ms=s.recent_match_tolerance_ms,
        )


@dataclass
class ResolutionContext:
    log: Sequence[LogEntry]
    message_id: str
    role: Role
    client_view: Optional[Sequence[ClientMessage]]
    conversation_id: Optional[str]
    timestamp_ms: Optional[int]
    config: ResolverConfig


Strategy = Callable[[ResolutionContext], Optional[int]]


def _sender_matches(message: ClientMessage, role: Role) -> bool:
    # 开场白在全局计数中被排除，UI 侧若带有标记也同样排除
    if message.metadata.get("is_first_mes"):
        return False
    if role == "user":
        return message.sender == "user"
    return message.sender == "bot"


def match_by_timestamp(ctx: ResolutionContext) -> Optional[int]:
    """时间戳匹配。

    按记录顺序扫描，第一条差值小于精确容差的消息立即胜出（不比较哪条更近）；
    否则取差值最小的一条，只要小于近似容差即可。
    """

    t = ctx.timestamp_ms
    if t is None:
        return None
    cfg = ctx.config
    best_index = NOT_FOUND
    best_diff: Optional[int] = None
    for global_index, entry in enumerate(ctx.log):
        if not is_countable(entry, ctx.role) or not entry.timestamp_ms:
            continue
        diff = abs(entry.timestamp_ms - t)
        if diff < cfg.exact_match_tolerance_ms:
            logger.info(
                "Exact timestamp match",
                extra={"extra": {"global_index": global_index, "time_diff_ms": diff}},
            )
            return role_index_of(ctx.log, global_index, ctx.role)
        if best_diff is None or diff < best_diff:
            best_diff = diff
            best_index = global_index

    if best_index != NOT_FOUND and best_diff is not None and best_diff < cfg.close_match_tolerance_ms:
        logger.info(
            "Close timestamp match",
            extra={"extra": {"global_index": best_index, "time_diff_ms": best_diff}},
        )
        return role_index_of(ctx.log, best_index, ctx.role)
    return None


@dataclass
class _Candidate:
    global_index: int
    exact_text: bool
    close_text: bool
    position_match: bool


def _select_candidate(candidates: Sequence[_Candidate], paginated: bool) -> Optional[_Candidate]:
    if paginated:
        # 分页视图中 UI 内的相对位置与全局位置无关，只看文本
        predicates: Tuple[Callable[[_Candidate], bool], ...] = (
            lambda c: c.exact_text,
            lambda c: c.close_text,
        )
    else:
        predicates = (
            lambda c: c.exact_text and c.position_match,
            lambda c: c.exact_text,
            lambda c: c.close_text and c.position_match,
            lambda c: c.close_text,
        )
    for predicate in predicates:
        for candidate in candidates:
            if predicate(candidate):
                return candidate
    return None


def match_by_content(ctx: ResolutionContext) -> Optional[int]:
    """按 UI 视图中的文本与相对位置匹配。"""

    view = ctx.client_view
    if not view:
        return None
    target_pos = next((i for i, m in enumerate(view) if m.id == ctx.message_id), None)
    if target_pos is None:
        return None
    target = view[target_pos]
    cfg = ctx.config

    paginated = len(view) < len(ctx.log) and len(view) <= cfg.max_page_size
    local_preceding = sum(1 for m in view[:target_pos] if _sender_matches(m, ctx.role))
    target_text = target.text or ""

    candidates = []
    for global_index, entry in enumerate(ctx.log):
        if not is_countable(entry, ctx.role):
            continue
        stored_text = entry.text or ""
        exact_text = stored_text == target_text
        close_text = (
            len(stored_text) > cfg.close_text_min_length
            and len(target_text) > cfg.close_text_min_length
            and stored_text[: cfg.close_text_prefix_length] == target_text[: cfg.close_text_prefix_length]
        )
        if not (exact_text or close_text):
            continue
        global_preceding = count_preceding(ctx.log, global_index, ctx.role)
        candidates.append(
            _Candidate(
                global_index=global_index,
                exact_text=exact_text,
                close_text=close_text,
                position_match=global_preceding == local_preceding,
            )
        )

    chosen = _select_candidate(candidates, paginated)
    logger.info(
        "Content match candidates",
        extra={"extra": {
            "view_size": len(view),
            "log_size": len(ctx.log),
            "paginated": paginated,
            "local_preceding": local_preceding,
            "candidates": len(candidates),
            "chosen": chosen.global_index if chosen else None,
            "target_text": preview(target_text),
        }},
    )
    if chosen is None:
        return None
    return role_index_of(ctx.log, chosen.global_index, ctx.role)


def match_by_recency(ctx: ResolutionContext) -> Optional[int]:
    """对创建已久的会话，假定被操作的是最近几条消息之一。"""

    t = ctx.timestamp_ms
    if t is None:
        return None
    positions = [i for i, entry in enumerate(ctx.log) if is_countable(entry, ctx.role)]
    if not positions:
        return None
    started_at = conversation_created_at(ctx.conversation_id)
    if started_at is None:
        return None
    cfg = ctx.config
    if t - started_at <= cfg.recent_conversation_age_ms:
        return None
    for global_index in positions[-cfg.recent_tail_size:]:
        entry = ctx.log[global_index]
        if entry.timestamp_ms and abs(entry.timestamp_ms - t) < cfg.recent_match_tolerance_ms:
            logger.info(
                "Recent message match",
                extra={"extra": {"global_index": global_index}},
            )
            return role_index_of(ctx.log, global_index, ctx.role)
    return None


DEFAULT_STRATEGIES: Tuple[Tuple[str, Strategy], ...] = (
    ("timestamp", match_by_timestamp),
    ("content", match_by_content),
    ("recency", match_by_recency),
)


class MessageResolver:
    """按顺序运行定位策略，第一个成功的结果胜出。"""

    def __init__(
        self,
        config: Optional[ResolverConfig] = None,
        strategies: Optional[Sequence[Tuple[str, Strategy]]] = None,
    ):
        self._config = config or ResolverConfig()
        self._strategies = tuple(strategies) if strategies is not None else DEFAULT_STRATEGIES

    @property
    def config(self) -> ResolverConfig:
        return self._config

    def resolve(
        self,
        log: Sequence[LogEntry],
        message_id: str,
        role: Role,
        client_view: Optional[Sequence[ClientMessage]] = None,
        conversation_id: Optional[str] = None,
    ) -> int:
        """返回 1-based 角色序号；找不到可靠匹配时返回 -1。"""

        log_ctx = {"conversation_id": conversation_id, "message_id": message_id, "role": role}
        if not log:
            logger.warning("Empty conversation history", extra={"extra": log_ctx})
            return NOT_FOUND

        ctx = ResolutionContext(
            log=log,
            message_id=message_id,
            role=role,
            client_view=client_view,
            conversation_id=conversation_id,
            timestamp_ms=extract_timestamp(message_id),
            config=self._config,
        )
        for name, strategy in self._strategies:
            result = strategy(ctx)
            if result is not None and result != NOT_FOUND:
                logger.info("Resolved message", extra={"extra": {**log_ctx, "strategy": name, "role_index": result}})
                return result

        logger.error(
            "Could not find reliable match",
            extra={"extra": {**log_ctx, "timestamp_ms": ctx.timestamp_ms, "log_size": len(log)}},
        )
        return NOT_FOUND


def resolve(
    log: Sequence[LogEntry],
    message_id: str,
    role: Role,
    client_view: Optional[Sequence[ClientMessage]] = None,
    conversation_id: Optional[str] = None,
) -> int:
    return MessageResolver().resolve(log, message_id, role, client_view, conversation_id)
