"""Convo Agent 顶层包。

该包提供聊天机器人背后的回合编排引擎，
包括配置加载、领域模型、模型客户端适配、工具注册与分发、
按用户隔离的有界会话记忆，以及带降级路径的多轮工具调用编排。
"""

from convo_agent.agents.base_agent import AgentConfig, AgentEngine
from convo_agent.domain.models import Message, TurnOutcome

__all__ = ["AgentConfig", "AgentEngine", "Message", "TurnOutcome"]
