"""领域层模型与协议。

包含：
- models: Message / ChatSettings / WireRequest / WireResponse 等统一模型。
- conversation: 会话实体与标题推导规则。
- exceptions: 业务异常类型定义。
"""
