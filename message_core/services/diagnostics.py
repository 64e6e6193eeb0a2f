"""消息定位的自检工具。

借助存储层提供的测试数据接口，批量验证定位引擎在完整视图与分页视图下的准确性。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from message_core.domain.conversation import ChatHistoryStore
from message_core.domain.models import ApiSettings, ClientMessage, LogEntry, Role
from message_core.infrastructure.logging.logger import logger
from message_core.resolution.role_index import role_index_of
from message_core.services.message_service import MessageService

PAGINATED_TEST_TOTAL = 85
PASS_RATIO = 0.8


@dataclass
class LookupCase:
    message_id: str
    role: Role
    expected_index: int
    timestamp: Optional[int] = None
    text: str = ""


@dataclass
class LookupOutcome:
    message_id: str
    role: Role
    expected_index: int
    actual_index: int
    success: bool
    error: Optional[str] = None


def _role_of(entry: LogEntry) -> Role:
    return "user" if entry.role == "user" else "model"


def _as_view(entries: Sequence[LogEntry], suffix: str, with_timestamp: bool = True) -> List[ClientMessage]:
    return [
        ClientMessage(
            id=f"{e.timestamp_ms}-{suffix}" if with_timestamp else f"{suffix}-{e.global_index}",
            text=e.text,
            sender="user" if e.role == "user" else "bot",
            timestamp=e.timestamp_ms,
        )
        for e in entries
    ]


class MessageDiagnostics:
    def __init__(self, store: ChatHistoryStore, service: MessageService):
        self._store = store
        self._service = service

    async def create_test_messages(self, conversation_id: str, count: int = 61) -> List[LogEntry]:
        entries = await self._store.create_test_chat_history(conversation_id, count)
        logger.info("Created test messages", extra={"extra": {"conversation_id": conversation_id, "count": len(entries)}})
        return entries

    async def check_index_lookup_accuracy(
        self,
        conversation_id: str,
        cases: Sequence[LookupCase],
    ) -> List[LookupOutcome]:
        """不带 UI 视图逐条定位，比较期望序号与实际序号。"""

        outcomes: List[LookupOutcome] = []
        for case in cases:
            try:
                actual = await self._service.find_message_role_index(conversation_id, case.message_id, case.role)
            except Exception as e:
                outcomes.append(LookupOutcome(case.message_id, case.role, case.expected_index, -1, False, error=str(e)))
                continue
            outcomes.append(
                LookupOutcome(case.message_id, case.role, case.expected_index, actual, actual == case.expected_index)
            )
        return outcomes

    async def verify_store_integration(self, conversation_id: str) -> Dict[str, Any]:
        try:
            index_map = await self._store.get_test_message_index_map(conversation_id)
            log = await self._store.get_clean_chat_history(conversation_id)
        except Exception as e:
            logger.error("Store integration check failed", extra={"extra": {"conversation_id": conversation_id, "error": str(e)}})
            return {
                "success": False,
                "message_count": 0,
                "user_message_count": 0,
                "ai_message_count": 0,
                "index_map": None,
                "error": str(e),
            }
        return {
            "success": True,
            "message_count": len(log),
            "user_message_count": sum(1 for e in log if e.role == "user"),
            "ai_message_count": sum(1 for e in log if e.role in ("model", "assistant")),
            "index_map": index_map,
        }

    async def generate_test_cases(self, conversation_id: str, sample_count: int = 10) -> List[LookupCase]:
        """从存储的索引映射中采样：一半用户消息，其余为 AI 消息。"""

        index_map = await self._store.get_test_message_index_map(conversation_id)
        cases: List[LookupCase] = []

        user_msgs = index_map["user_messages"]
        user_quota = sample_count // 2
        if user_quota:
            step = max(1, len(user_msgs) // user_quota)
            for item in user_msgs[::step][:user_quota]:
                cases.append(LookupCase(f"{item['timestamp']}-test-user", "user", item["role_index"], item["timestamp"], item["text"]))

        ai_msgs = index_map["ai_messages"]
        ai_quota = sample_count - len(cases)
        if ai_quota > 0:
            step = max(1, len(ai_msgs) // ai_quota)
            for item in ai_msgs[::step][:ai_quota]:
                cases.append(LookupCase(f"{item['timestamp']}-test-ai", "model", item["role_index"], item["timestamp"], item["text"]))
        return cases

    async def cleanup_test_data(self, conversation_id: str) -> bool:
        try:
            return await self._store.cleanup_test_data(conversation_id)
        except Exception as e:
            logger.error("Cleanup failed", extra={"extra": {"conversation_id": conversation_id, "error": str(e)}})
            return False

    @staticmethod
    def describe_api_settings(api_settings: Optional[ApiSettings]) -> Dict[str, Any]:
        """返回不含密钥的凭据摘要。"""

        if api_settings is None:
            return {"success": False, "error": "no api settings supplied"}
        return {
            "success": True,
            "settings": {
                "provider": api_settings.provider,
                "has_api_key": bool(api_settings.api_key),
                "use_cloud_service": api_settings.use_cloud_service,
                "base_url": api_settings.base_url,
                "model": api_settings.model,
            },
        }

    async def check_paginated_management(self, conversation_id: str, page_size: int = 30) -> Dict[str, Any]:
        """模拟 UI 只持有当前页消息的情况，验证各页消息都能定位。"""

        results: List[str] = []
        try:
            await self.create_test_messages(conversation_id, PAGINATED_TEST_TOTAL)
            integration = await self.verify_store_integration(conversation_id)
            if not integration["success"]:
                raise RuntimeError(f"store integration failed: {integration.get('error')}")
            results.append(f"created {integration['message_count']} messages")

            log = await self._store.get_clean_chat_history(conversation_id)
            pages: List[List[LogEntry]] = []
            end = len(log)
            for _ in range(3):
                start = max(0, end - page_size)
                pages.append(list(log[start:end]))
                end = start
            results.append("pages: " + ", ".join(f"#{n + 1}={len(p)}" for n, p in enumerate(pages)))

            total = passed = 0
            for page_num, page in enumerate(pages, start=1):
                if not page:
                    results.append(f"page {page_num}: empty, skipped")
                    continue
                picks = [page[0], page[len(page) // 2], page[-1]]
                view = _as_view(page, "ui")
                # 不含时间戳的 id 只能靠视图中的文本定位
                content_view = _as_view(page, f"page{page_num}", with_timestamp=False)
                for entry in picks:
                    if entry.is_first_mes or not entry.timestamp_ms:
                        continue
                    role = _role_of(entry)
                    expected = role_index_of(log, entry.global_index, role)
                    lookups = (
                        ("timestamp", f"{entry.timestamp_ms}-test-{page_num}", view),
                        ("content", f"page{page_num}-{entry.global_index}", content_view),
                    )
                    for how, message_id, lookup_view in lookups:
                        total += 1
                        found = await self._service.find_message_role_index(conversation_id, message_id, role, lookup_view)
                        if found == expected:
                            passed += 1
                            results.append(f"page {page_num} {role} by {how}: ok ({found})")
                            continue
                        results.append(f"page {page_num} {role} by {how}: failed ({found}, expected {expected})")
                        if how == "timestamp":
                            direct = await self._store.verify_message_index_lookup(conversation_id, message_id, role)
                            if direct.get("success"):
                                results.append(f"  direct store lookup: role_index={direct['role_index']}")
                            else:
                                results.append(f"  direct store lookup failed: {direct.get('error')}")

            results.append(f"lookups: {passed}/{total}")

            oldest = next((e for e in pages[-1] if not e.is_first_mes), None) if pages[-1] else None
            if oldest is not None:
                single_view = _as_view([oldest], "single")
                found = await self._service.find_message_role_index(
                    conversation_id, single_view[0].id, _role_of(oldest), single_view
                )
                results.append(f"single-message page: {'ok' if found > 0 else 'failed'} ({found})")

            newest = pages[0][0] if pages[0] else None
            if newest is not None:
                found = await self._service.find_message_role_index(
                    conversation_id, f"{newest.timestamp_ms}-empty", _role_of(newest), []
                )
                results.append(f"empty view: {'ok' if found > 0 else 'failed'} ({found})")

            success = total > 0 and passed >= total * PASS_RATIO
            return {"success": success, "results": results}
        except Exception as e:
            logger.error("Paginated check failed", extra={"extra": {"conversation_id": conversation_id, "error": str(e)}})
            results.append(f"error: {e}")
            return {"success": False, "results": results, "error": str(e)}
