"""系统提示词加载工具。

按语言(locale) 从 prompts/<locale> 目录读取 system prompt 模板，
并把当前代码上下文填入 `{code_context}` 占位符。
"""

from pathlib import Path


PROMPTS_DIR = Path(__file__).resolve().parent


def load_system_prompt(code_context: str = "", locale: str = "en") -> str:
    """加载编程助手的 system prompt 并填入代码上下文。"""

    fname = PROMPTS_DIR / locale / "assistant_system.md"
    template = fname.read_text(encoding="utf-8")
    return template.replace("{code_context}", code_context)
