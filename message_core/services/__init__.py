"""Service-level entry points (mutation dispatch, diagnostics)."""

from .message_service import MessageService, to_client_messages
from .diagnostics import LookupCase, MessageDiagnostics

__all__ = ["LookupCase", "MessageDiagnostics", "MessageService", "to_client_messages"]
