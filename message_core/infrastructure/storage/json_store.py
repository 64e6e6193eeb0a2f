import json
import os
import shutil
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional
from uuid import uuid4

from message_core.config.settings import Settings, settings as default_settings
from message_core.domain.conversation import ChatHistoryStore, StreamCallback
from message_core.domain.exceptions import BusinessError
from message_core.domain.models import ApiSettings, ChatMessage, ChatRequest, LogEntry, Role, StoredRole
from message_core.infrastructure.logging.logger import logger
from message_core.providers import create_provider
from message_core.providers.base import ProviderClient
from message_core.resolution.identifiers import conversation_created_at, extract_timestamp, now_ms
from message_core.resolution.role_index import is_countable, role_index_of

ProviderFactory = Callable[[ApiSettings], ProviderClient]

TEST_MESSAGE_INTERVAL_MS = 60_000


class JsonChatHistoryStore(ChatHistoryStore):
    """以 JSON Lines 文件持久化的聊天记录存储。

    每个会话一个目录，``messages.jsonl`` 按追加顺序保存消息；
    所有变更都整体重写文件，并通过 os.replace 原子替换。
    """

    def __init__(
        self,
        root: str | Path | None = None,
        provider_factory: Optional[ProviderFactory] = None,
        cfg: Optional[Settings] = None,
    ):
        self._cfg = cfg or default_settings
        self._root = Path(root or self._cfg.storage_root).resolve()
        self._conv_root = self._root / "conversations"
        self._conv_root.mkdir(parents=True, exist_ok=True)
        self._provider_factory = provider_factory or (lambda api: create_provider(api, self._cfg))

    # ---- 读取 ----

    async def get_clean_chat_history(self, conversation_id: str) -> List[LogEntry]:
        return [self._to_entry(data, i) for i, data in enumerate(self._read(conversation_id))]

    # ---- 追加 ----

    async def append_message(
        self,
        conversation_id: str,
        role: StoredRole,
        text: str,
        timestamp_ms: Optional[int] = None,
        is_first_mes: bool = False,
    ) -> LogEntry:
        records = self._read(conversation_id)
        data = {
            "role": role,
            "text": text,
            "timestamp": timestamp_ms if timestamp_ms is not None else now_ms(),
            "is_first_mes": is_first_mes,
        }
        records.append(data)
        self._write(conversation_id, records)
        return self._to_entry(data, len(records) - 1)

    # ---- 按角色序号变更 ----

    async def edit_user_message_by_index(
        self,
        conversation_id: str,
        role_index: int,
        new_text: str,
        api_key: str,
        api_settings: ApiSettings,
    ) -> bool:
        return self._edit(conversation_id, "user", role_index, new_text)

    async def edit_ai_message_by_index(
        self,
        conversation_id: str,
        role_index: int,
        new_text: str,
        api_key: str,
        api_settings: ApiSettings,
    ) -> bool:
        return self._edit(conversation_id, "model", role_index, new_text)

    async def delete_user_message_by_index(
        self,
        conversation_id: str,
        role_index: int,
        api_key: str,
        api_settings: ApiSettings,
    ) -> bool:
        return self._delete(conversation_id, "user", role_index)

    async def delete_ai_message_by_index(
        self,
        conversation_id: str,
        role_index: int,
        api_key: str,
        api_settings: ApiSettings,
    ) -> bool:
        return self._delete(conversation_id, "model", role_index)

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
        """用目标消息之前的历史重新请求 LLM，并原地替换目标消息。"""

        records = self._read(conversation_id)
        pos = self._locate(records, "model", role_index)
        if pos is None:
            return None

        prompt = [
            ChatMessage(
                role="system",
                content=f"You are roleplaying the character '{character_id}'. The user's name is {user_nickname}.",
            )
        ]
        for data in records[:pos]:
            prompt.append(ChatMessage(role="user" if data.get("role") == "user" else "assistant", content=data.get("text") or ""))
        req = ChatRequest(
            model=api_settings.model or self._cfg.default_model,
            messages=prompt,
            temperature=api_settings.temperature if api_settings.temperature is not None else self._cfg.default_temperature,
        )
        provider = self._provider_factory(api_settings)

        if on_stream is not None:
            parts: List[str] = []
            async for chunk in provider.chat_stream(req):
                if chunk.delta:
                    parts.append(chunk.delta)
                    on_stream(chunk.delta)
            text = "".join(parts)
        else:
            result = await provider.chat(req)
            text = result.content

        if not text:
            logger.warning(
                "Provider returned empty regeneration",
                extra={"extra": {"conversation_id": conversation_id, "role_index": role_index}},
            )
            return None
        records[pos]["text"] = text
        records[pos]["timestamp"] = now_ms()
        self._write(conversation_id, records)
        return text

    # ---- 测试与验证辅助 ----

    async def create_test_chat_history(self, conversation_id: str, count: int) -> List[LogEntry]:
        """写入 count 条测试消息：一条开场白，之后用户/AI 交替，间隔一分钟。"""

        base = conversation_created_at(conversation_id) or (now_ms() - count * TEST_MESSAGE_INTERVAL_MS)
        records: List[Dict[str, Any]] = []
        user_n = ai_n = 0
        for i in range(count):
            ts = base + i * TEST_MESSAGE_INTERVAL_MS
            if i == 0:
                records.append({"role": "model", "text": "Hello! I am the test character.", "timestamp": ts, "is_first_mes": True})
            elif i % 2 == 1:
                user_n += 1
                records.append({"role": "user", "text": f"Test user message #{user_n}", "timestamp": ts, "is_first_mes": False})
            else:
                ai_n += 1
                records.append({"role": "model", "text": f"Test AI reply #{ai_n}", "timestamp": ts, "is_first_mes": False})
        self._write(conversation_id, records)
        return [self._to_entry(data, i) for i, data in enumerate(records)]

    async def get_test_message_index_map(self, conversation_id: str) -> Dict[str, Any]:
        log = await self.get_clean_chat_history(conversation_id)
        index_map: Dict[str, Any] = {"total": len(log), "user_messages": [], "ai_messages": []}
        for role, key in (("user", "user_messages"), ("model", "ai_messages")):
            for entry in log:
                if not is_countable(entry, role):
                    continue
                index_map[key].append({
                    "global_index": entry.global_index,
                    "role_index": role_index_of(log, entry.global_index, role),
                    "timestamp": entry.timestamp_ms,
                    "text": entry.text,
                })
        return index_map

    async def verify_message_index_lookup(self, conversation_id: str, message_id: str, role: Role) -> Dict[str, Any]:
        """只按时间戳精确匹配的直接查找，用于与定位引擎的结果对照。"""

        ts = extract_timestamp(message_id)
        if ts is None:
            return {"success": False, "error": f"no timestamp in message id {message_id!r}"}
        log = await self.get_clean_chat_history(conversation_id)
        for entry in log:
            if is_countable(entry, role) and entry.timestamp_ms and abs(entry.timestamp_ms - ts) < self._cfg.exact_match_tolerance_ms:
                return {
                    "success": True,
                    "role_index": role_index_of(log, entry.global_index, role),
                    "global_index": entry.global_index,
                }
        return {"success": False, "error": f"no {role} message with timestamp {ts}"}

    async def cleanup_test_data(self, conversation_id: str) -> bool:
        cdir = self._conv_root / conversation_id
        if not cdir.exists():
            return False
        try:
            shutil.rmtree(cdir)
        except Exception as e:
            raise BusinessError(code="STORE_DELETE_ERROR", message=str(e))
        return True

    # ---- 内部实现 ----

    def _edit(self, conversation_id: str, role: Role, role_index: int, new_text: str) -> bool:
        records = self._read(conversation_id)
        pos = self._locate(records, role, role_index)
        if pos is None:
            return False
        records[pos]["text"] = new_text
        self._write(conversation_id, records)
        return True

    def _delete(self, conversation_id: str, role: Role, role_index: int) -> bool:
        records = self._read(conversation_id)
        pos = self._locate(records, role, role_index)
        if pos is None:
            return False
        del records[pos]
        self._write(conversation_id, records)
        return True

    def _locate(self, records: List[Dict[str, Any]], role: Role, role_index: int) -> Optional[int]:
        """把 1-based 角色序号换算成文件中的位置；开场白不计数。"""

        if role_index < 1:
            return None
        counter = 0
        for pos, data in enumerate(records):
            if is_countable(self._to_entry(data, pos), role):
                counter += 1
                if counter == role_index:
                    return pos
        return None

    def _messages_path(self, conversation_id: str) -> Path:
        if not conversation_id or "/" in conversation_id or "\\" in conversation_id or conversation_id in (".", ".."):
            raise BusinessError(code="CONVERSATION_NOT_FOUND", message=str(conversation_id))
        return self._conv_root / conversation_id / "messages.jsonl"

    def _read(self, conversation_id: str) -> List[Dict[str, Any]]:
        path = self._messages_path(conversation_id)
        if not path.exists():
            return []
        items: List[Dict[str, Any]] = []
        try:
            lines = path.read_text(encoding="utf-8").splitlines()
        except Exception as e:
            raise BusinessError(code="STORE_READ_ERROR", message=str(e))
        for line in lines:
            if not line.strip():
                continue
            try:
                items.append(json.loads(line))
            except json.JSONDecodeError:
                logger.warning("Skipping corrupt history line", extra={"extra": {"conversation_id": conversation_id}})
        return items

    def _write(self, conversation_id: str, records: List[Dict[str, Any]]) -> None:
        path = self._messages_path(conversation_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.parent / f"messages.{uuid4().hex}.jsonl.tmp"
        try:
            body = "".join(json.dumps(r, ensure_ascii=False) + "\n" for r in records)
            tmp_path.write_text(body, encoding="utf-8")
            os.replace(tmp_path, path)
        except Exception as e:
            tmp_path.unlink(missing_ok=True)
            raise BusinessError(code="STORE_WRITE_ERROR", message=str(e))

    @staticmethod
    def _to_entry(data: Dict[str, Any], global_index: int) -> LogEntry:
        ts = data.get("timestamp")
        return LogEntry(
            role=data.get("role") or "user",
            text=data.get("text") or "",
            timestamp_ms=int(ts) if ts is not None else None,
            is_first_mes=bool(data.get("is_first_mes", False)),
            global_index=global_index,
        )
