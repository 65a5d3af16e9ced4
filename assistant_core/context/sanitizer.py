"""清洗嵌入 system 上下文的 Markdown 文本。"""

import re

_CONTROL_RUN_RE = re.compile(r"(.)\x01+")
_FENCE = "```"


def sanitize_markdown_text(text: str) -> str:
    """清洗嵌入 system 上下文的文件文本。

    - 去掉紧跟在字符后的 \\x01 控制字符串。
    - 文本中 ``` 数量为奇数时补上收尾的 ```，避免后续内容被吞进代码块。
    """

    text = _CONTROL_RUN_RE.sub(r"\1", text)
    if text.count(_FENCE) % 2 == 1:
        text += _FENCE
    return text
