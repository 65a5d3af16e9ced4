"""测试共用的桩对象。"""

import asyncio
import json


class SettingsStub:
    deepseek_api_key = "sk-test-0123456789"
    deepseek_endpoint = "https://api.deepseek.com/v1/chat/completions"
    deepseek_balance_url = "https://api.deepseek.com/user/balance"
    default_model = "reasoner"
    max_tokens = 2000
    http_timeout = 1.0
    watchdog_timeout = 5.0
    settle_delay = 0
    max_history_length = 200
    max_project_files = 50


class RecordingSink:
    def __init__(self):
        self.events = []

    def emit(self, event):
        self.events.append(event)

    def kinds(self):
        return [e.kind for e in self.events]

    def deltas(self):
        return [(e.content, e.reasoning) for e in self.events if e.kind == "delta" and not e.is_final]


class FakeTransport:
    """按顺序产出给定字节块；可在末尾抛错或一直挂起。"""

    name = "fake"

    def __init__(self, chunks=(), error=None, hang=False, delay=0.0):
        self.chunks = list(chunks)
        self.error = error
        self.hang = hang
        self.delay = delay
        self.calls = []
        self.cancelled = False

    async def post_streaming_request(self, url, body, headers, cancel_event):
        self.calls.append({"url": url, "body": body, "headers": dict(headers)})
        try:
            for i, chunk in enumerate(self.chunks):
                await asyncio.sleep(self.delay if i else 0)
                yield chunk
            if self.error is not None:
                raise self.error
            if self.hang:
                await asyncio.Event().wait()
        except asyncio.CancelledError:
            self.cancelled = True
            raise


def data_line(content=None, reasoning=None):
    delta = {}
    if content is not None:
        delta["content"] = content
    if reasoning is not None:
        delta["reasoning_content"] = reasoning
    return "data: " + json.dumps({"choices": [{"index": 0, "delta": delta}]}, ensure_ascii=False) + "\n"
