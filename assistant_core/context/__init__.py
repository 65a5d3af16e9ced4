"""代码上下文：文件读取 (file_provider)、Markdown 清洗 (sanitizer)
以及 system 消息上下文拼装 (builder)。"""
