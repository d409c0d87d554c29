"""系统提示词加载工具。

按语言(locale) 从 prompts/<locale> 目录读取 system prompt 文本；
配置中设置了 system_prompt 时优先使用配置值。
"""

from pathlib import Path
from typing import Optional


PROMPTS_DIR = Path(__file__).resolve().parent


def load_system_prompt(override: Optional[str] = None, locale: str = "en") -> str:
    if override:
        return override
    fname = PROMPTS_DIR / locale / "chat_system.md"
    return fname.read_text(encoding="utf-8").strip()
