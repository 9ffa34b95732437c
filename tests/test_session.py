"""Unit tests for the session controller."""
import asyncio

import pytest

from chital.exceptions import (
    CONNECTION_REFUSED_MESSAGE,
    TIMEOUT_MESSAGE,
    MalformedResponseError,
    TransportError,
    TransportKind,
)
from chital.session import SessionRegistry, SessionState
from chital.threads import ChatMessage, ThreadEventKind


class TestSubmit:
    """Tests for the submit transition."""

    @pytest.mark.asyncio
    async def test_hello_scenario(self, registry, store, backend):
        """Test a full first exchange: streamed reply, flags and one title call."""
        thread = store.new_draft()
        controller = registry.controller_for(thread)

        accepted = await controller.submit("Hello")
        await controller.summary_task

        assert accepted
        assert [(m.text, m.is_user) for m in thread.chronological_messages] == [
            ("Hello", True),
            ("Hi there!", False),
        ]
        assert not thread.is_thinking
        assert thread.has_received_first_message
        assert controller.state is SessionState.IDLE
        assert controller.last_error is None
        assert len(backend.single_calls) == 1
        assert thread.title == "A Title"

    @pytest.mark.asyncio
    async def test_request_carries_full_history(self, registry, store, backend):
        """Test that the backend sees the whole history but not the empty placeholder."""
        thread = store.new_draft()
        controller = registry.controller_for(thread)
        await controller.submit("Hello")
        await controller.submit("And again")

        model, messages = backend.stream_calls[-1]
        assert model == "llama3:latest"
        assert [(m.role, m.content) for m in messages] == [
            ("user", "Hello"),
            ("assistant", "Hi there!"),
            ("user", "And again"),
        ]

    @pytest.mark.asyncio
    async def test_each_submit_adds_two_messages(self, registry, store, backend):
        """Test that a successful submit adds exactly one user and one assistant message."""
        backend.fragments = ["a", "b", "c", "d"]
        thread = store.new_draft()
        controller = registry.controller_for(thread)

        for expected in (2, 4, 6):
            await controller.submit("go")
            assert len(thread.messages) == expected
            assert thread.chronological_messages[-1].text == "abcd"

    @pytest.mark.asyncio
    async def test_first_submit_promotes_draft(self, registry, store):
        """Test that a draft becomes a listed thread on its first submission."""
        thread = store.new_draft()
        controller = registry.controller_for(thread)

        await controller.submit("Hello")

        assert not thread.is_draft
        assert store.list_threads() == [thread]
        stored = await store.persistence.list_threads()
        assert sorted(m.text for m in stored[0].messages) == ["Hello", "Hi there!"]

    @pytest.mark.asyncio
    async def test_empty_text_is_rejected(self, registry, store, backend):
        """Test that empty input is a no-op."""
        thread = store.new_draft()
        controller = registry.controller_for(thread)

        assert not await controller.submit("")
        assert thread.is_draft
        assert backend.stream_calls == []

    @pytest.mark.asyncio
    async def test_placeholder_is_added_before_content(self, registry, store):
        """Test that the empty assistant message is visible before any fragment."""
        thread = store.new_draft()
        controller = registry.controller_for(thread)
        seen = []

        def listener(event):
            if event.kind is ThreadEventKind.MESSAGE_ADDED:
                message = thread.find_message(event.message_ids[0])
                seen.append((message.is_user, message.text))

        store.subscribe(listener)
        await controller.submit("Hello")

        assert seen == [(True, "Hello"), (False, "")]

    @pytest.mark.asyncio
    async def test_second_exchange_does_not_retitle(self, registry, store, backend):
        """Test that only the first completed exchange launches the summarizer."""
        thread = store.new_draft()
        controller = registry.controller_for(thread)
        await controller.submit("Hello")
        await registry.summarizer.wait()
        await controller.submit("More")
        await registry.summarizer.wait()

        assert len(backend.single_calls) == 1


class TestSubmitErrors:
    """Tests for the error path of an exchange."""

    @pytest.mark.asyncio
    async def test_connection_refused_keeps_partial_reply(self, registry, store, backend):
        """Test that a mid-stream disconnect keeps streamed text and reports the server hint."""
        backend.fragments = ["Partial", " never"]
        backend.stream_error = TransportError("refused", TransportKind.CONNECTION_REFUSED)
        backend.fail_after = 1
        thread = store.new_draft()
        controller = registry.controller_for(thread)
        errors = []
        controller.on_error(lambda t, message: errors.append(message))

        await controller.submit("Hello")

        reply = thread.chronological_messages[-1]
        assert not reply.is_user
        assert reply.text == "Partial"
        assert not thread.is_thinking
        assert controller.last_error == CONNECTION_REFUSED_MESSAGE
        assert "ensure that the Ollama server is running" in errors[0]
        assert controller.state is SessionState.IDLE
        assert not thread.has_received_first_message
        assert backend.single_calls == []

        stored = await store.persistence.list_threads()
        assert "Partial" in [m.text for m in stored[0].messages]

    @pytest.mark.asyncio
    async def test_failure_publishes_idle_thread(self, registry, store, backend):
        """Test that observers see the thread busy on accept and idle after a failure."""
        backend.stream_error = TransportError("refused", TransportKind.CONNECTION_REFUSED)
        thread = store.new_draft()
        controller = registry.controller_for(thread)
        updates = []

        def record(event):
            if event.kind is ThreadEventKind.THREAD_UPDATED:
                updates.append(thread.is_thinking)

        store.subscribe(record)
        await controller.submit("Hello")

        assert updates[0] is True
        assert updates[-1] is False
        assert controller.last_error == CONNECTION_REFUSED_MESSAGE

    @pytest.mark.asyncio
    async def test_timeout_message(self, registry, store, backend):
        """Test that a timeout is reported with the retry-later hint."""
        backend.stream_error = TransportError("slow", TransportKind.TIMEOUT)
        thread = store.new_draft()
        controller = registry.controller_for(thread)

        await controller.submit("Hello")

        assert controller.last_error == TIMEOUT_MESSAGE
        assert thread.chronological_messages[-1].text == ""

    @pytest.mark.asyncio
    async def test_other_failure_includes_description(self, registry, store, backend):
        """Test that unexpected failures carry the underlying description."""
        backend.stream_error = TransportError("stream was garbled")
        controller = registry.controller_for(store.new_draft())

        await controller.submit("Hello")

        assert "stream was garbled" in controller.last_error
        assert controller.last_error.startswith("An unexpected error occurred")

    @pytest.mark.asyncio
    async def test_no_models_blocks_send(self, store, backend, settings):
        """Test that a send with no installed models fails before any reply exists."""
        backend.models = []
        registry = SessionRegistry(store, backend, settings)
        await registry.refresh_models()
        thread = store.new_draft()
        controller = registry.controller_for(thread)

        assert await controller.submit("Hello")

        assert [m.text for m in thread.messages] == ["Hello"]
        assert "No model selected" in controller.last_error
        assert not thread.is_thinking
        assert backend.stream_calls == []

    @pytest.mark.asyncio
    async def test_thread_usable_after_error(self, registry, store, backend):
        """Test that a failed exchange leaves the thread ready for another submit."""
        backend.stream_error = TransportError("refused", TransportKind.CONNECTION_REFUSED)
        thread = store.new_draft()
        controller = registry.controller_for(thread)
        await controller.submit("Hello")

        backend.stream_error = None
        await controller.submit("Hello again")

        assert controller.last_error is None
        assert thread.chronological_messages[-1].text == "Hi there!"
        assert thread.has_received_first_message


class TestConcurrency:
    """Tests for single-flight and cross-thread independence."""

    @pytest.mark.asyncio
    async def test_busy_thread_rejects_submission(self, registry, store, backend):
        """Test that a second submit while streaming is rejected."""
        backend.gate = asyncio.Event()
        thread = store.new_draft()
        controller = registry.controller_for(thread)

        first = asyncio.create_task(controller.submit("Hello"))
        while controller.state is not SessionState.STREAMING:
            await asyncio.sleep(0)

        assert thread.is_thinking
        assert not await controller.submit("Interrupting")
        assert not await controller.retry(thread.chronological_messages[0])

        backend.gate.set()
        assert await first
        assert len(thread.messages) == 2
        assert len(backend.stream_calls) == 1

    @pytest.mark.asyncio
    async def test_threads_stream_independently(self, registry, store, backend):
        """Test that two threads can run exchanges at the same time."""
        first = store.new_draft()
        second = store.new_draft()

        results = await asyncio.gather(
            registry.controller_for(first).submit("One"),
            registry.controller_for(second).submit("Two"),
        )

        assert results == [True, True]
        assert [m.text for m in first.chronological_messages] == ["One", "Hi there!"]
        assert [m.text for m in second.chronological_messages] == ["Two", "Hi there!"]
        assert len(store.list_threads()) == 2

    @pytest.mark.asyncio
    async def test_cancel_keeps_partial_text(self, registry, store, backend):
        """Test that cancelling stops after the current fragment."""
        backend.fragments = ["one", " two", " three"]
        thread = store.new_draft()
        controller = registry.controller_for(thread)

        def cancel_after_first(event):
            if event.kind is ThreadEventKind.MESSAGE_UPDATED:
                controller.cancel()

        store.subscribe(cancel_after_first)
        await controller.submit("Count")

        assert thread.chronological_messages[-1].text == "one"
        assert not thread.is_thinking
        assert controller.last_error is None
        assert controller.summary_task is None
        assert controller.state is SessionState.IDLE


    @pytest.mark.asyncio
    async def test_task_cancellation_saves_partial_reply(self, registry, store, backend):
        """Test that cancelling the submitting task keeps and persists streamed text."""
        backend.fragments = ["Partial", " never"]
        backend.gate = asyncio.Event()
        backend.gate_after = 1
        thread = store.new_draft()
        controller = registry.controller_for(thread)
        updates = []

        def record(event):
            if event.kind is ThreadEventKind.THREAD_UPDATED:
                updates.append(thread.is_thinking)

        store.subscribe(record)
        task = asyncio.create_task(controller.submit("Hello"))
        while not thread.messages or thread.chronological_messages[-1].text != "Partial":
            await asyncio.sleep(0)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert not thread.is_thinking
        assert controller.state is SessionState.IDLE
        assert updates[-1] is False
        stored = await store.persistence.list_threads()
        assert "Partial" in [m.text for m in stored[0].messages]


class TestRetry:
    """Tests for the retry transition."""

    @pytest.mark.asyncio
    async def test_retry_regenerates_reply(self, registry, store, backend):
        """Test that retrying an assistant reply resends the history before it."""
        thread = store.new_draft()
        controller = registry.controller_for(thread)
        await controller.submit("Hello")
        old_reply = thread.chronological_messages[-1]

        backend.fragments = ["Hey", "!"]
        assert await controller.retry(old_reply)

        messages = thread.chronological_messages
        assert [m.text for m in messages] == ["Hello", "Hey!"]
        assert messages[-1].id != old_reply.id
        assert thread.find_message(old_reply.id) is None
        assert not thread.is_thinking

        _, sent = backend.stream_calls[-1]
        assert [(m.role, m.content) for m in sent] == [("user", "Hello")]

        after_cut = [m for m in messages if m.sort_key >= old_reply.sort_key]
        assert [m.text for m in after_cut] == ["Hey!"]

    @pytest.mark.asyncio
    async def test_retry_from_middle_discards_later_messages(self, registry, store, backend):
        """Test that retrying an early reply drops every later message."""
        thread = store.new_draft()
        controller = registry.controller_for(thread)
        await controller.submit("First")
        await controller.submit("Second")
        first_reply = thread.chronological_messages[1]

        await controller.retry(first_reply)

        assert [m.text for m in thread.chronological_messages] == ["First", "Hi there!"]
        stored = await store.persistence.list_threads()
        assert len(stored[0].messages) == 2

    @pytest.mark.asyncio
    async def test_retry_user_message_has_nothing_to_send(self, registry, store, backend):
        """Test that retrying at the only user message empties the thread without a request."""
        thread = store.new_draft()
        controller = registry.controller_for(thread)
        await controller.submit("Hello")
        calls = len(backend.stream_calls)

        assert await controller.retry(thread.chronological_messages[0])

        assert thread.messages == []
        assert len(backend.stream_calls) == calls
        assert not thread.is_thinking

    @pytest.mark.asyncio
    async def test_retry_unknown_message(self, registry, store):
        """Test that retrying a message outside the thread does nothing."""
        controller = registry.controller_for(store.new_draft())
        assert not await controller.retry(ChatMessage(text="stray", is_user=False))


class TestSummarizerIsolation:
    """Tests that title failures never touch the chat."""

    @pytest.mark.asyncio
    async def test_summary_failure_is_contained(self, registry, store, backend):
        """Test that a malformed title reply leaves chat state intact."""
        backend.single_error = MalformedResponseError("bad json")
        thread = store.new_draft()
        controller = registry.controller_for(thread)
        errors = []
        controller.on_error(lambda t, message: errors.append(message))

        await controller.submit("Hello")
        result = await controller.summary_task

        assert result is None
        assert thread.title == ""
        assert errors == []
        assert controller.last_error is None
        assert thread.has_received_first_message


class TestSessionRegistry:
    """Tests for the registry."""

    @pytest.mark.asyncio
    async def test_one_controller_per_thread(self, registry, store):
        """Test that the same thread always maps to the same controller."""
        thread = store.new_draft()
        assert registry.controller_for(thread) is registry.controller_for(thread)
        assert registry.controller_for(store.new_draft()) is not registry.controller_for(thread)

    @pytest.mark.asyncio
    async def test_open_resolves_model(self, store, backend, settings):
        """Test that opening a thread picks the first model when no default is set."""
        backend.models = ["a", "b"]
        registry = SessionRegistry(store, backend, settings)
        await registry.refresh_models()
        thread = store.new_draft()

        registry.controller_for(thread)

        assert thread.selected_model == "a"

    @pytest.mark.asyncio
    async def test_refresh_failure_keeps_models(self, registry, backend):
        """Test that an unreachable server keeps the previous model list."""
        backend.models_error = TransportError("down", TransportKind.CONNECTION_REFUSED)

        assert await registry.refresh_models() == ["llama3:latest"]

    @pytest.mark.asyncio
    async def test_refresh_updates_controllers(self, registry, store, backend):
        """Test that a new model list reaches existing controllers."""
        thread = store.new_draft()
        controller = registry.controller_for(thread)
        backend.models = ["qwen2:7b"]

        await registry.refresh_models()
        await controller.submit("Hello")

        assert thread.selected_model == "qwen2:7b"
        assert backend.stream_calls[-1][0] == "qwen2:7b"
