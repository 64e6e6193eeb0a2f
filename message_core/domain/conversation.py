from typing import Optional, Dict, Any, List, Protocol, Callable

from .models import ApiSettings, LogEntry, Role


StreamCallback = Callable[[str], None]


class ChatHistoryStore(Protocol):
    """持久化聊天记录存储（外部协作者）。

    所有按序号的变更接口使用 1-based 的角色序号（role index），
    开场白 (is_first_mes) 不计入序号。
    """

    async def get_clean_chat_history(self, conversation_id: str) -> List[LogEntry]:
        ...

    async def edit_user_message_by_index(
        self,
        conversation_id: str,
        role_index: int,
        new_text: str,
        api_key: str,
        api_settings: ApiSettings,
    ) -> bool:
        ...

    async def edit_ai_message_by_index(
        self,
        conversation_id: str,
        role_index: int,
        new_text: str,
        api_key: str,
        api_settings: ApiSettings,
    ) -> bool:
        ...

    async def delete_user_message_by_index(
        self,
        conversation_id: str,
        role_index: int,
        api_key: str,
        api_settings: ApiSettings,
    ) -> bool:
        ...

    async def delete_ai_message_by_index(
        self,
        conversation_id: str,
        role_index: int,
        api_key: str,
        api_settings: ApiSettings,
    ) -> bool:
        ...

    async def regenerate_ai_message_by_index(
        self,
        conversation_id: str,
        role_index: int,
        api_key: str,
        character_id: str,
        user_nickname: str,
        api_settings: ApiSettings,
        on_stream: Optional[StreamCallback] = None,
    ) -> Optional[str]:
        ...

    # ---- 仅供验证工具使用 ----

    async def create_test_chat_history(self, conversation_id: str, count: int) -> List[LogEntry]:
        ...

    async def get_test_message_index_map(self, conversation_id: str) -> Dict[str, Any]:
        ...

    async def verify_message_index_lookup(self, conversation_id: str, message_id: str, role: Role) -> Dict[str, Any]:
        ...

    async def cleanup_test_data(self, conversation_id: str) -> bool:
        ...
