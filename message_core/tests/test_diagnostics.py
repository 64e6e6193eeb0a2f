import asyncio
import tempfile
from pathlib import Path

from message_core.domain.models import ApiSettings
from message_core.infrastructure.storage.json_store import JsonChatHistoryStore
from message_core.services import LookupCase, MessageDiagnostics, MessageService

CID = "1700000000000"


def _diagnostics(root):
    store = JsonChatHistoryStore(root=root)
    return store, MessageDiagnostics(store, MessageService(store))


def test_generated_cases_resolve_accurately():
    with tempfile.TemporaryDirectory() as d:
        store, diag = _diagnostics(Path(d) / ".storage")

        async def scenario():
            await diag.create_test_messages(CID, 61)
            cases = await diag.generate_test_cases(CID, 10)
            cases.append(LookupCase("garbage", "user", 1))
            return cases, await diag.check_index_lookup_accuracy(CID, cases)

        cases, outcomes = asyncio.run(scenario())
        assert len(cases) == 11
        assert [c.role for c in cases[:10]] == ["user"] * 5 + ["model"] * 5
        assert all(o.success for o in outcomes[:10])
        assert outcomes[-1].success is False
        assert outcomes[-1].actual_index == -1


def test_store_integration_counts():
    with tempfile.TemporaryDirectory() as d:
        store, diag = _diagnostics(Path(d) / ".storage")

        async def scenario():
            await diag.create_test_messages(CID, 21)
            report = await diag.verify_store_integration(CID)
            cleaned = await diag.cleanup_test_data(CID)
            return report, cleaned

        report, cleaned = asyncio.run(scenario())
        assert report["success"]
        assert report["message_count"] == 21
        assert report["user_message_count"] == 10
        assert report["ai_message_count"] == 11
        assert len(report["index_map"]["ai_messages"]) == 10
        assert cleaned is True


def test_paginated_management_check_passes():
    with tempfile.TemporaryDirectory() as d:
        store, diag = _diagnostics(Path(d) / ".storage")
        report = asyncio.run(diag.check_paginated_management(CID, page_size=30))
        assert report["success"], report["results"]
        assert "pages: #1=30, #2=30, #3=25" in report["results"]
        assert any(line.startswith("empty view: ok") for line in report["results"])
        assert "lookups: 16/16" in report["results"]
        content_lines = [line for line in report["results"] if " by content: " in line]
        assert len(content_lines) == 8
        assert all(": ok (" in line for line in content_lines)


def test_describe_api_settings_hides_key():
    summary = MessageDiagnostics.describe_api_settings(ApiSettings(api_key="sk-secret", model="m"))
    assert summary["success"]
    assert summary["settings"]["has_api_key"] is True
    assert "sk-secret" not in str(summary)
    assert MessageDiagnostics.describe_api_settings(None)["success"] is False
