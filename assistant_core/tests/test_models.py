from assistant_core.domain.exceptions import StreamTimeoutError
from assistant_core.domain.models import ChatMessage, ChatRequest, StreamEvent


def test_request_payload_shape():
    req = ChatRequest(model="deepseek-reasoner", messages=[ChatMessage(role="user", content="hi")])
    assert req.to_payload() == {
        "model": "deepseek-reasoner",
        "messages": [{"role": "user", "content": "hi"}],
        "stream": True,
    }
    req.max_tokens = 2000
    assert req.to_payload()["max_tokens"] == 2000


def test_stream_event_webview_messages():
    delta = StreamEvent(kind="delta", content="a", reasoning="r")
    assert delta.to_message() == {"command": "streamResponse", "text": "a", "reasoning": "r", "isFinal": False}
    assert StreamEvent(kind="completed").to_message() == {"command": "endLoading"}
    assert StreamEvent(kind="cleared").to_message() == {"command": "clearHistory"}
    err = StreamEvent(kind="error", error=StreamTimeoutError(20.0))
    assert err.to_message() == {"command": "showError", "message": "Request timed out. Please try again."}
