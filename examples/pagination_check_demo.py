"""Minimal demonstration of message lookup on a paginated conversation."""

import asyncio
import tempfile

from message_core import MessageDiagnostics, MessageService
from message_core.infrastructure.storage.json_store import JsonChatHistoryStore

if __name__ == "__main__":
    with tempfile.TemporaryDirectory() as root:
        store = JsonChatHistoryStore(root=root)
        diagnostics = MessageDiagnostics(store, MessageService(store))
        report = asyncio.run(diagnostics.check_paginated_management("1700000000000", page_size=30))
        for line in report["results"]:
            print(line)
        print("passed:", report["success"])
