"""
Unit Tests for the Chat Companion
"""

import pytest

from calmify.chat_companion import (
    EMPTY_REPLY_MESSAGE,
    ERROR_REPLY_MESSAGE,
    LISTENING_MESSAGE,
    SWITCHED_LANGUAGE_MESSAGE,
    WELCOME_MESSAGE,
    ChatCompanion,
    ChatError,
    ChatSessionStore,
)
from calmify.gemini_service import GeminiService


class TestChatSessionStore:
    """Test suite for per-user chat sessions."""

    @pytest.fixture
    def sessions(self):
        """Create an empty session store."""
        return ChatSessionStore()

    def test_new_session_starts_with_welcome(self, sessions):
        """Test a first visit is greeted with the welcome message."""
        messages = sessions.history("u1", "en")
        assert len(messages) == 1
        assert messages[0].role == "model"
        assert messages[0].text == WELCOME_MESSAGE

    def test_language_switch_resets_session(self, sessions):
        """Test switching language clears history and re-greets."""
        sessions.history("u1", "en")
        messages = sessions.history("u1", "es")
        assert [m.text for m in messages] == [SWITCHED_LANGUAGE_MESSAGE]

        messages = sessions.history("u1", "en")
        assert [m.text for m in messages] == [LISTENING_MESSAGE]

    def test_unsupported_language(self, sessions):
        """Test an unknown language is rejected."""
        with pytest.raises(ValueError):
            sessions.history("u1", "xx")


class TestChatCompanion:
    """Test suite for ChatCompanion turns against a fake model."""

    @pytest.fixture
    def companion(self, fake_llm):
        """Create a companion backed by the fake model."""
        return ChatCompanion(GeminiService(llm_client=fake_llm))

    def test_shares_session_store(self, fake_llm):
        """Test turns land in a session store passed in by the caller."""
        sessions = ChatSessionStore()
        companion = ChatCompanion(GeminiService(llm_client=fake_llm), sessions=sessions)
        companion.get_session("u1", "en")
        assert "u1" in sessions.sessions

    @pytest.mark.asyncio
    async def test_send_appends_turn(self, companion, fake_llm):
        """Test a turn appends the user message and the reply."""
        fake_llm.queue("That sounds hard. Want to tell me more?")
        reply = await companion.send("u1", "Work is stressful", "en")

        assert reply.role == "model"
        roles = [m.role for m in companion.history("u1", "en")]
        assert roles == ["model", "user", "model"]
        sent = fake_llm.calls[0]["messages"]
        assert sent[-1] == {"role": "user", "content": "Work is stressful"}

    @pytest.mark.asyncio
    async def test_blank_message_rejected(self, companion, fake_llm):
        """Test blank input never reaches the model."""
        with pytest.raises(ChatError):
            await companion.send("u1", "  ", "en")
        assert fake_llm.calls == []

    @pytest.mark.asyncio
    async def test_empty_reply_uses_fallback(self, companion, fake_llm):
        """Test an empty model reply is replaced by the fallback text."""
        fake_llm.queue("")
        reply = await companion.send("u1", "hello", "en")
        assert reply.text == EMPTY_REPLY_MESSAGE

    @pytest.mark.asyncio
    async def test_failed_call_surfaces_apology(self, companion, fake_llm):
        """Test a failed call becomes an apology in the conversation."""
        fake_llm.queue(RuntimeError("network down"))
        reply = await companion.send("u1", "hello", "en")
        assert reply.text == ERROR_REPLY_MESSAGE
        assert companion.history("u1", "en")[-1].text == ERROR_REPLY_MESSAGE

    @pytest.mark.asyncio
    async def test_stream_records_full_reply(self, companion, fake_llm):
        """Test the streamed chunks are recorded as one reply."""
        fake_llm.queue(["Take ", "a deep ", "breath."])
        chunks = [c async for c in companion.stream("u1", "I'm anxious", "en")]

        assert "".join(chunks) == "Take a deep breath."
        assert companion.history("u1", "en")[-1].text == "Take a deep breath."

    @pytest.mark.asyncio
    async def test_stream_failure_mid_reply(self, companion, fake_llm):
        """Test a stream that breaks keeps the partial reply and appends an apology."""
        fake_llm.queue(["Take ", RuntimeError("reset")])
        chunks = [c async for c in companion.stream("u1", "I'm anxious", "en")]

        assert chunks[0] == "Take "
        assert ERROR_REPLY_MESSAGE in chunks[-1]
        assert companion.history("u1", "en")[-1].text.startswith("Take ")
