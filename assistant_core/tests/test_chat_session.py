"""测试 ChatSession 的端到端流程。"""

import asyncio

from assistant_core.agents.chat_session import STATE_KEY, ChatSession
from assistant_core.context.file_provider import LocalFileContextProvider
from assistant_core.domain.conversation import WorkspaceContext
from assistant_core.domain.exceptions import ApiError
from assistant_core.infrastructure.storage.json_store import JsonStateStore
from assistant_core.streaming.session import StreamState
from assistant_core.tests.fakes import FakeTransport, RecordingSink, SettingsStub, data_line


def _make_chat(tmp_path, transport, cfg=None, context=None):
    sink = RecordingSink()
    state_store = JsonStateStore(root=tmp_path / ".storage")
    chat = ChatSession(
        transport=transport,
        state_store=state_store,
        context_provider=LocalFileContextProvider(tmp_path),
        sink=sink,
        cfg=cfg or SettingsStub(),
        context=context,
    )
    return chat, sink, state_store


def test_submit_streams_commits_and_persists(tmp_path):
    (tmp_path / "main.py").write_text("print('hi')", encoding="utf-8")
    transport = FakeTransport([data_line(reasoning="hmm"), data_line(content="It prints hi."), "data: [DONE]\n"])
    chat, sink, state_store = _make_chat(tmp_path, transport, context=WorkspaceContext(current_file="main.py"))

    async def scenario():
        session = await chat.submit("What does this do?")
        return await session.wait()

    assert asyncio.run(scenario()) == StreamState.COMPLETED
    assert sink.kinds() == ["start_loading", "delta", "delta", "completed", "delta"]

    msgs = chat.history.messages
    assert [m.role for m in msgs] == ["system", "user", "assistant"]
    assert "Current File: main.py\n```python\nprint('hi')\n```" in msgs[0].content
    assert msgs[2].content == "It prints hi."

    body = transport.calls[0]["body"]
    assert body["model"] == "deepseek-reasoner"
    assert body["stream"] is True
    assert body["messages"][0]["role"] == "system"
    assert body["messages"][-1] == {"role": "user", "content": "What does this do?"}

    saved = state_store.get(STATE_KEY)
    assert len(saved["conversation_history"]) == 3
    assert saved["current_file"] == "main.py"


def test_submit_without_api_key_reports_error(tmp_path):
    cfg = SettingsStub()
    cfg.deepseek_api_key = None
    transport = FakeTransport([data_line(content="never")])
    chat, sink, state_store = _make_chat(tmp_path, transport, cfg=cfg)

    assert asyncio.run(chat.submit("hello")) is None
    assert sink.kinds() == ["start_loading", "end_loading", "error"]
    assert sink.events[-1].error.code == "MISSING_API_KEY"
    assert transport.calls == []
    assert len(chat.history) == 0
    assert state_store.get(STATE_KEY)["conversation_history"] == []


def test_retry_after_failure_replaces_unanswered_user_turn(tmp_path):
    failing = FakeTransport(error=ApiError(code="API_ERROR", message="Server busy", http_status=503))
    chat, sink, _ = _make_chat(tmp_path, failing)

    async def scenario():
        first = await chat.submit("question v1")
        assert await first.wait() == StreamState.FAILED
        chat.aggregator._transport = FakeTransport([data_line(content="answer"), "data: [DONE]\n"])
        second = await chat.submit("question v2")
        return await second.wait()

    assert asyncio.run(scenario()) == StreamState.COMPLETED
    assert [(m.role, m.content) for m in chat.history.messages[1:]] == [
        ("user", "question v2"),
        ("assistant", "answer"),
    ]
    errors = [e for e in sink.events if e.kind == "error"]
    assert len(errors) == 1
    assert errors[0].error.message == "Server busy"


def test_cancel_discards_partial_answer(tmp_path):
    transport = FakeTransport([data_line(content="partial")], hang=True)
    chat, sink, state_store = _make_chat(tmp_path, transport)

    async def scenario():
        session = await chat.submit("q")
        for _ in range(100):
            if "delta" in sink.kinds():
                break
            await asyncio.sleep(0)
        await chat.cancel()
        return await session.wait()

    assert asyncio.run(scenario()) == StreamState.CANCELLED
    assert [m.role for m in chat.history.messages] == ["system", "user"]
    assert sink.kinds()[-1] == "end_loading"
    assert "error" not in sink.kinds()
    saved = state_store.get(STATE_KEY)
    assert [(m["role"], m["content"]) for m in saved["conversation_history"]][1:] == [("user", "q")]


def test_clear_resets_history_and_pinned_files(tmp_path):
    (tmp_path / "a.py").write_text("a = 1", encoding="utf-8")
    chat, sink, state_store = _make_chat(tmp_path, FakeTransport())

    async def scenario():
        await chat.add_files(["a.py"])
        chat.history.append_user("q")
        chat.history.append_assistant("a")
        await chat.clear()

    asyncio.run(scenario())
    assert "cleared" in sink.kinds()
    assert chat.context.project_files == []
    assert [m.role for m in chat.history.messages] == ["system"]
    assert "a.py" not in chat.history.messages[0].content
    saved = state_store.get(STATE_KEY)
    assert saved["project_files"] == []
    assert [m["role"] for m in saved["conversation_history"]] == ["system"]


def test_add_and_remove_files(tmp_path):
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "a.py").write_text("A", encoding="utf-8")
    (tmp_path / "b.md").write_text("B", encoding="utf-8")
    chat, _, state_store = _make_chat(tmp_path, FakeTransport())

    async def scenario():
        await chat.set_current_file("b.md")
        added = await chat.add_files(["src/./a.py", "src/a.py", "missing.py", "b.md"])
        return added

    assert asyncio.run(scenario()) == ["src/a.py"]
    assert chat.file_list() == ["b.md", "src/a.py"]
    system = chat.history.messages[0].content
    assert "Current File: b.md" in system
    assert "Project File: src/a.py" in system

    asyncio.run(chat.remove_file("src/a.py"))
    assert chat.context.project_files == []
    assert "src/a.py" not in chat.history.messages[0].content
    assert state_store.get(STATE_KEY)["project_files"] == []

    asyncio.run(chat.remove_file("./b.md"))
    assert chat.context.current_file is None
    assert chat.file_list() == []
    assert "b.md" not in chat.history.messages[0].content
    assert state_store.get(STATE_KEY)["current_file"] is None


def test_restore_dedupes_history_and_drops_missing_files(tmp_path):
    (tmp_path / "keep.py").write_text("k", encoding="utf-8")
    chat, _, state_store = _make_chat(tmp_path, FakeTransport())
    state_store.set(
        STATE_KEY,
        {
            "conversation_history": [
                {"role": "system", "content": "old system"},
                {"role": "user", "content": "q"},
                {"role": "assistant", "content": "a"},
                {"role": "user", "content": "q"},
                {"role": "assistant", "content": ""},
            ],
            "project_files": ["keep.py", "gone.py"],
            "current_file": "gone.py",
            "ui": {"isReasoningExpanded": True},
        },
    )

    asyncio.run(chat.restore())

    assert chat.context.current_file is None
    assert chat.context.project_files == ["keep.py"]
    assert [(m.role, m.content) for m in chat.history.messages] == [
        ("system", "old system"),
        ("user", "q"),
        ("assistant", "a"),
    ]
    assert chat.history_view() == [{"role": "user", "content": "q"}, {"role": "assistant", "content": "a"}]
    assert chat.ui_state == {"isReasoningExpanded": True}


def test_save_state_trims_history_and_project_files(tmp_path):
    cfg = SettingsStub()
    cfg.max_history_length = 5
    cfg.max_project_files = 2
    chat, _, state_store = _make_chat(tmp_path, FakeTransport(), cfg=cfg)
    chat.history.set_system_message("sys")
    for i in range(6):
        chat.history.append_user(f"u{i}")
        chat.history.append_assistant(f"a{i}")
    chat.context.project_files = ["a.py", "b.py", "c.py"]

    asyncio.run(chat.save_state())

    saved = state_store.get(STATE_KEY)
    assert [m["content"] for m in saved["conversation_history"]] == ["sys", "u4", "a4", "u5", "a5"]
    assert saved["project_files"] == ["b.py", "c.py"]


def test_submit_caps_max_tokens_at_model_limit(tmp_path):
    cfg = SettingsStub()
    cfg.max_tokens = 100000
    transport = FakeTransport([data_line(content="ok"), "data: [DONE]\n"])
    chat, _, _ = _make_chat(tmp_path, transport, cfg=cfg)

    async def scenario():
        session = await chat.submit("hi")
        return await session.wait()

    assert asyncio.run(scenario()) == StreamState.COMPLETED
    assert transport.calls[0]["body"]["max_tokens"] == 8192


def test_submitted_question_is_saved_before_answer_arrives(tmp_path):
    transport = FakeTransport([data_line(content="partial")], hang=True)
    chat, _, state_store = _make_chat(tmp_path, transport)

    async def scenario():
        session = await chat.submit("pending question")
        saved = state_store.get(STATE_KEY)
        await chat.cancel()
        await session.wait()
        return saved

    saved = asyncio.run(scenario())
    assert saved["conversation_history"][-1] == {"role": "user", "content": "pending question"}
