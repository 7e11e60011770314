"""领域层模型与协议。

包含：
- models: Message（持久化的单条发言）、ChatMessage（发往后端的线上消息）与 TurnOutcome。
- conversation: 有界会话记忆 ConversationMemory 及 ConversationStore 协议。
- exceptions: 业务异常类型定义。
"""
