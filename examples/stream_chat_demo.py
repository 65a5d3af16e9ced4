"""Minimal demonstration of the streaming chat session."""

import asyncio
import sys
from pathlib import Path

from assistant_core import ChatSession
from assistant_core.config.settings import settings
from assistant_core.context.file_provider import LocalFileContextProvider
from assistant_core.domain.models import StreamEvent
from assistant_core.infrastructure.storage.json_store import JsonStateStore
from assistant_core.providers import create_provider


class ConsoleSink:
    def emit(self, event: StreamEvent) -> None:
        if event.kind == "delta":
            sys.stdout.write(event.reasoning or event.content)
            sys.stdout.flush()
        elif event.kind == "error" and event.error is not None:
            print(f"\n[error] {event.error.message}")


async def main(question: str) -> None:
    chat = ChatSession(
        transport=create_provider(),
        state_store=JsonStateStore(settings.storage_root),
        context_provider=LocalFileContextProvider(Path(settings.workspace_root)),
        sink=ConsoleSink(),
    )
    await chat.restore()
    session = await chat.submit(question)
    if session is not None:
        await session.wait()
    print()


if __name__ == "__main__":
    asyncio.run(main(" ".join(sys.argv[1:]) or "Explain what README.md is for"))
