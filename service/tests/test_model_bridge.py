"""
Tests for ModelBridge history handling and error normalization.

Run with: pytest tests/test_model_bridge.py -v
"""

import asyncio

from chatter.services.errors import BackendError, NoBackendAvailable
from chatter.services.model_bridge import (
    MAX_HISTORY,
    NOT_AVAILABLE_MESSAGE,
    ConversationTurn,
    ModelBridge,
)

from fakes import FakeBackend, FakeWorkspace


def ask(bridge, question, include_context=False, session_id="default"):
    return asyncio.run(bridge.ask(question, include_context, session_id=session_id))


class TestHistory:
    """Rolling conversation history."""

    def test_successful_ask_appends_pair(self, bridge):
        result = ask(bridge, "What is 2+2?")
        assert result.text == "answer 1"
        assert result.error is None
        assert bridge.history() == (
            ConversationTurn("user", "What is 2+2?"),
            ConversationTurn("assistant", "answer 1"),
        )

    def test_history_sent_with_next_question(self, bridge, backend):
        ask(bridge, "first")
        ask(bridge, "second")
        assert backend.calls[1] == [
            {"role": "user", "content": "first"},
            {"role": "assistant", "content": "answer 1"},
            {"role": "user", "content": "second"},
        ]

    def test_six_exchanges_keep_last_five_pairs(self, bridge):
        for i in range(1, 7):
            ask(bridge, f"q{i}")

        history = bridge.history()
        assert len(history) == MAX_HISTORY == 10
        assert history[0] == ConversationTurn("user", "q2")
        assert history[1] == ConversationTurn("assistant", "answer 2")
        assert history[-2] == ConversationTurn("user", "q6")
        assert history[-1] == ConversationTurn("assistant", "answer 6")

    def test_clear_history(self, bridge):
        for i in range(4):
            ask(bridge, f"q{i}")
        bridge.clear_history()
        assert bridge.history() == ()
        bridge.clear_history()
        assert bridge.history() == ()

    def test_sessions_are_isolated(self, bridge):
        ask(bridge, "mine", session_id=1)
        ask(bridge, "theirs", session_id=2)
        assert [t.content for t in bridge.history(1)] == ["mine", "answer 1"]
        bridge.clear_history(1)
        assert bridge.history(1) == ()
        assert len(bridge.history(2)) == 2

    def test_concurrent_asks_are_serialized(self):
        class SlowBackend(FakeBackend):
            async def complete(self, messages):
                await asyncio.sleep(0.01)
                return await super().complete(messages)

        backend = SlowBackend()
        bridge = ModelBridge(backend)

        async def run():
            await asyncio.gather(*(bridge.ask(f"q{i}") for i in range(8)))

        asyncio.run(run())

        history = bridge.history()
        assert len(history) == MAX_HISTORY
        # Strict user/assistant alternation and each request saw a
        # complete history (even length before the new question)
        assert [t.role for t in history] == ["user", "assistant"] * 5
        assert all(len(call) % 2 == 1 for call in backend.calls)


class TestWorkspaceContext:
    """Context asks are stateless single-shot queries."""

    def test_context_ask_includes_snapshot(self, bridge, backend):
        result = ask(bridge, "What does this do?", include_context=True)
        assert result.error is None

        [messages] = backend.calls
        assert len(messages) == 1
        content = messages[0]["content"]
        assert content.startswith("Workspace context:\nFile: /work/demo-project/app.py\nLanguage: python\n")
        assert "```python\nimport os\nprint(os.getcwd())\n```" in content
        assert content.endswith("\n\nUser question: What does this do?")

    def test_context_ask_does_not_touch_history(self, bridge, backend):
        ask(bridge, "plain")
        ask(bridge, "with context", include_context=True)
        assert len(backend.calls[1]) == 1
        assert [t.content for t in bridge.history()] == ["plain", "answer 1"]

    def test_no_active_file_sends_question_alone(self, backend):
        bridge = ModelBridge(backend, FakeWorkspace(snapshot=None))
        ask(bridge, "bare", include_context=True)
        assert backend.calls == [[{"role": "user", "content": "bare"}]]


class TestErrors:
    """Failures come back as BridgeResponse.error, never as exceptions."""

    def test_no_backend(self):
        bridge = ModelBridge(None)
        result = ask(bridge, "What is 2+2?")
        assert result.text == ""
        assert result.error == NOT_AVAILABLE_MESSAGE
        assert "not available" in result.error
        assert bridge.history() == ()

    def test_backend_unauthenticated(self):
        bridge = ModelBridge(FakeBackend(error=NoBackendAvailable("rejected the API key")))
        result = ask(bridge, "q")
        assert result.error == "rejected the API key"
        assert bridge.history() == ()

    def test_backend_error_surfaces_message_and_code(self):
        bridge = ModelBridge(FakeBackend(error=BackendError("Overloaded", 529)))
        result = ask(bridge, "q")
        assert result.text == ""
        assert result.error == "Model error: Overloaded (529)"
        assert bridge.history() == ()

    def test_unexpected_error(self):
        bridge = ModelBridge(FakeBackend(error=RuntimeError("boom")))
        result = ask(bridge, "q")
        assert result.error == "Unexpected error: boom"

    def test_timeout(self):
        class HangingBackend(FakeBackend):
            async def complete(self, messages):
                await asyncio.sleep(10)

        bridge = ModelBridge(HangingBackend(), timeout=0.01)
        result = ask(bridge, "q")
        assert result.error.startswith("Unexpected error: model request timed out")
        assert bridge.history() == ()

    def test_ok_flag(self, bridge):
        assert ask(bridge, "q").ok
        assert not ask(ModelBridge(None), "q").ok


class TestHistoryEdgeCases:
    """Answers that must not end up in the history."""

    def test_empty_answer_not_recorded(self):
        backend = FakeBackend(["", "ok"])
        bridge = ModelBridge(backend)

        first = ask(bridge, "first")
        assert first.text == ""
        assert first.error is None
        assert bridge.history() == ()

        ask(bridge, "second")
        assert backend.calls[1] == [{"role": "user", "content": "second"}]
        assert [t.content for t in bridge.history()] == ["second", "ok"]

    def test_blank_answer_not_recorded(self):
        bridge = ModelBridge(FakeBackend(["  \n "]))
        ask(bridge, "q")
        assert bridge.history() == ()

    def test_clear_during_request_wins(self):
        async def run():
            started = asyncio.Event()
            release = asyncio.Event()
            release.set()

            class GatedBackend(FakeBackend):
                async def complete(self, messages):
                    started.set()
                    await release.wait()
                    return await super().complete(messages)

            bridge = ModelBridge(GatedBackend())
            await bridge.ask("before")
            started.clear()
            release.clear()

            pending = asyncio.ensure_future(bridge.ask("in flight"))
            await started.wait()

            bridge.clear_history()
            assert bridge.history() == ()
            release.set()
            result = await pending
            return bridge, result

        bridge, result = asyncio.run(run())
        assert result.text == "answer 2"
        assert bridge.history() == ()
