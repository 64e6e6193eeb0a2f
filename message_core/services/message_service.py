"""消息变更服务。

UI 只持有临时生成的消息 id；本服务负责：

1. 校验会话 ID 与凭据（缺失时直接失败，不做任何写入）。
2. 重新读取完整聊天记录，用 MessageResolver 定位角色序号。
3. 定位失败时直接返回失败，绝不调用存储层的变更接口。
4. 调用存储层对应的按序号接口（编辑/删除/重新生成）。
5. 成功后重新读取完整记录，生成带新 id 的 UI 消息列表。

所有异常都会被转换为 MutationResult，不会抛出到调用方。
"""

import enum
from contextlib import nullcontext
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Union

from message_core.domain.conversation import ChatHistoryStore, StreamCallback
from message_core.domain.exceptions import (
    BusinessError,
    MessageNotFound,
    MissingConversationOrCredentials,
    MutationRejected,
    UnexpectedError,
)
from message_core.domain.models import ApiSettings, ClientMessage, LogEntry, MutationResult, Role
from message_core.infrastructure.locks import ConversationLocks
from message_core.infrastructure.logging.logger import logger
from message_core.resolution.identifiers import generate_message_id, now_ms
from message_core.resolution.resolver import MessageResolver
from message_core.resolution.role_index import NOT_FOUND

ClientView = Optional[Sequence[ClientMessage]]
Mutation = Callable[[int, str], Awaitable[Union[bool, str, None]]]


class MutationPhase(str, enum.Enum):
    IDLE = "idle"
    RESOLVING = "resolving"
    DISPATCHING = "dispatching"
    RECONCILING = "reconciling"


def to_client_messages(log: Sequence[LogEntry]) -> List[ClientMessage]:
    """把完整记录映射为 UI 消息，每条都分配新生成的 id。"""

    messages = []
    for entry in log:
        ts = entry.timestamp_ms or now_ms()
        messages.append(
            ClientMessage(
                id=generate_message_id(ts),
                text=entry.text or "",
                sender="user" if entry.role == "user" else "bot",
                timestamp=ts,
                is_loading=False,
                metadata={"message_index": entry.global_index, "is_first_mes": entry.is_first_mes},
            )
        )
    return messages


class MessageService:
    def __init__(
        self,
        store: ChatHistoryStore,
        resolver: Optional[MessageResolver] = None,
        locks: Optional[ConversationLocks] = None,
    ):
        self._store = store
        self._resolver = resolver or MessageResolver()
        self._locks = locks

    # ---- 对外操作 ----

    async def regenerate_message(
        self,
        message_id: str,
        conversation_id: str,
        client_view: ClientView,
        api_settings: Optional[ApiSettings],
        character_id: Optional[str],
        user_nickname: Optional[str] = None,
        on_stream: Optional[StreamCallback] = None,
    ) -> MutationResult:
        """重新生成一条 AI 消息。"""

        async def mutate(role_index: int, api_key: str) -> Optional[str]:
            return await self._store.regenerate_ai_message_by_index(
                conversation_id,
                role_index,
                api_key,
                character_id,
                user_nickname or "User",
                api_settings,
                on_stream,
            )

        return await self._run(
            "regenerate",
            message_id,
            conversation_id,
            "model",
            client_view,
            api_settings,
            mutate,
            required_context=character_id,
        )

    async def edit_ai_message(
        self,
        message_id: str,
        new_text: str,
        conversation_id: str,
        client_view: ClientView,
        api_settings: Optional[ApiSettings],
    ) -> MutationResult:
        async def mutate(role_index: int, api_key: str) -> bool:
            return await self._store.edit_ai_message_by_index(conversation_id, role_index, new_text, api_key, api_settings)

        return await self._run("edit_ai", message_id, conversation_id, "model", client_view, api_settings, mutate)

    async def edit_user_message(
        self,
        message_id: str,
        new_text: str,
        conversation_id: str,
        client_view: ClientView,
        api_settings: Optional[ApiSettings],
    ) -> MutationResult:
        async def mutate(role_index: int, api_key: str) -> bool:
            return await self._store.edit_user_message_by_index(conversation_id, role_index, new_text, api_key, api_settings)

        return await self._run("edit_user", message_id, conversation_id, "user", client_view, api_settings, mutate)

    async def delete_ai_message(
        self,
        message_id: str,
        conversation_id: str,
        client_view: ClientView,
        api_settings: Optional[ApiSettings],
    ) -> MutationResult:
        async def mutate(role_index: int, api_key: str) -> bool:
            return await self._store.delete_ai_message_by_index(conversation_id, role_index, api_key, api_settings)

        return await self._run("delete_ai", message_id, conversation_id, "model", client_view, api_settings, mutate)

    async def delete_user_message(
        self,
        message_id: str,
        conversation_id: str,
        client_view: ClientView,
        api_settings: Optional[ApiSettings],
    ) -> MutationResult:
        async def mutate(role_index: int, api_key: str) -> bool:
            return await self._store.delete_user_message_by_index(conversation_id, role_index, api_key, api_settings)

        return await self._run("delete_user", message_id, conversation_id, "user", client_view, api_settings, mutate)

    async def find_message_role_index(
        self,
        conversation_id: str,
        message_id: str,
        role: Role,
        client_view: ClientView = None,
    ) -> int:
        """对最新读取的完整记录定位消息，返回 1-based 角色序号或 -1。"""

        log = await self._store.get_clean_chat_history(conversation_id)
        return self._resolver.resolve(log, message_id, role, client_view, conversation_id)

    async def get_messages_after_operation(self, conversation_id: str) -> List[ClientMessage]:
        """变更成功后重新读取完整记录；读取失败时返回空列表，不回滚已完成的写入。"""

        try:
            log = await self._store.get_clean_chat_history(conversation_id)
        except Exception as e:
            logger.error(
                "Failed to reload messages after operation",
                extra={"extra": {"conversation_id": conversation_id, "error": str(e)}},
            )
            return []
        return to_client_messages(log)

    # ---- 内部实现 ----

    async def _run(
        self,
        operation: str,
        message_id: str,
        conversation_id: str,
        role: Role,
        client_view: ClientView,
        api_settings: Optional[ApiSettings],
        mutate: Mutation,
        required_context: Any = True,
    ) -> MutationResult:
        log_ctx: Dict[str, Any] = {
            "operation": operation,
            "conversation_id": conversation_id,
            "message_id": message_id,
            "role": role,
        }
        try:
            if not conversation_id or not required_context:
                raise MissingConversationOrCredentials(message=f"Missing required information for {operation}")
            if api_settings is None or not api_settings.api_key:
                raise MissingConversationOrCredentials(message="API key not found in settings")

            lock = self._locks.hold(conversation_id) if self._locks else nullcontext()
            async with lock:
                self._phase(MutationPhase.RESOLVING, log_ctx)
                try:
                    role_index = await self.find_message_role_index(conversation_id, message_id, role, client_view)
                except BusinessError as e:
                    raise UnexpectedError(message=f"{operation} failed while reading history: {e.message}", cause=e.code)
                if role_index == NOT_FOUND:
                    raise MessageNotFound(message="Message not found in conversation history", **log_ctx)

                self._phase(MutationPhase.DISPATCHING, log_ctx, role_index=role_index)
                try:
                    outcome = await mutate(role_index, api_settings.api_key)
                except BusinessError as e:
                    raise MutationRejected(message=f"{operation} failed: {e.message}", cause=e.code, role_index=role_index)
                except Exception as e:
                    raise MutationRejected(message=f"{operation} failed: {e}", role_index=role_index)
                if not outcome:
                    raise MutationRejected(message=f"{operation} was rejected by the store", role_index=role_index)

                self._phase(MutationPhase.RECONCILING, log_ctx)
                messages = await self.get_messages_after_operation(conversation_id)

            self._phase(MutationPhase.IDLE, log_ctx, message_count=len(messages))
            return MutationResult(
                success=True,
                messages=messages,
                regenerated_text=outcome if isinstance(outcome, str) else None,
            )
        except BusinessError as e:
            logger.error(
                f"{operation} failed: {e.message}",
                extra={"extra": {**log_ctx, "code": e.code, **e.extra}},
            )
            return MutationResult(success=False, error_code=e.code, error_message=e.message)
        except Exception as e:
            err = UnexpectedError(message=str(e))
            logger.exception(f"{operation} failed unexpectedly", extra={"extra": {**log_ctx, "code": err.code}})
            return MutationResult(success=False, error_code=err.code, error_message=err.message)

    @staticmethod
    def _phase(phase: MutationPhase, log_ctx: Dict[str, Any], **fields: Any) -> None:
        logger.info(f"Mutation {phase.value}", extra={"extra": {**log_ctx, "phase": phase.value, **fields}})
