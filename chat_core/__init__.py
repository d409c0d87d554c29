"""Chat Core 顶层包。

该包提供多 Provider 聊天客户端的核心实现：
Provider 注册表与协议适配、会话存储与持久化、
以及负责一次发送流程的 ChatOrchestrator。
UI 渲染、快捷键等展示逻辑不在本包范围内。
"""

from chat_core.agents.orchestrator import ChatOrchestrator, SendOutcome

__all__ = ["ChatOrchestrator", "SendOutcome"]
