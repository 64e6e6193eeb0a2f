"""Message Core 顶层包。

该包实现聊天客户端中"按临时 id 编辑/删除/重新生成消息"的核心逻辑：
把 UI 持有的临时消息 id 可靠地映射为持久化记录中的角色序号，
再委托存储层执行按序号的变更。
"""

from message_core.services import MessageDiagnostics, MessageService

__all__ = ["MessageDiagnostics", "MessageService"]
