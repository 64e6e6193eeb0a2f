"""领域层模型与协议。

包含：
- models: LogEntry / ClientMessage / MutationResult 等数据模型。
- conversation: 聊天记录存储协作者的 ChatHistoryStore 协议。
- exceptions: 业务异常类型定义。
"""
