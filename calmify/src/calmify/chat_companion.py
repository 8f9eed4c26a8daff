"""
Chat Companion

Keeps one chat session per user. A session is bound to a language; switching
language starts a fresh session.
"""

import logging
from dataclasses import dataclass, field
from typing import AsyncGenerator, Dict, List, Optional

from calmify.gemini_service import GeminiService
from calmify.languages import language_name
from calmify.user_state import ChatMessage

logger = logging.getLogger(__name__)

WELCOME_MESSAGE = (
    "Hello. I'm Calmify. I'm here to listen without judgment. "
    "How have you been feeling lately?"
)
LISTENING_MESSAGE = "I'm listening..."
SWITCHED_LANGUAGE_MESSAGE = "I switched languages. I am listening..."
EMPTY_REPLY_MESSAGE = "I'm having trouble connecting right now, but I'm here with you."
ERROR_REPLY_MESSAGE = (
    "I apologize, but I'm having trouble processing that right now. Could we try again?"
)
DISCLAIMER = "AI can make mistakes. For emergencies, please call 911."


class ChatError(ValueError):
    """Raised for invalid chat input."""


@dataclass
class ChatSession:
    language: str
    messages: List[ChatMessage] = field(default_factory=list)


class ChatSessionStore:
    """Chat sessions keyed by user id. Needs no model to read or reset."""

    def __init__(self):
        self.sessions: Dict[str, ChatSession] = {}

    def get_session(self, user_id: str, language: str) -> ChatSession:
        """
        Get the user's session, re-creating it if the language changed.

        Raises:
            ValueError: If the language is not supported
        """
        language_name(language)
        session = self.sessions.get(user_id)

        if session is None:
            session = ChatSession(language=language)
            session.messages.append(ChatMessage(role="model", text=WELCOME_MESSAGE))
            self.sessions[user_id] = session
        elif session.language != language:
            text = LISTENING_MESSAGE if language == "en" else SWITCHED_LANGUAGE_MESSAGE
            session = ChatSession(language=language)
            session.messages.append(ChatMessage(role="model", text=text))
            self.sessions[user_id] = session
            logger.info(f"🌐 [ChatCompanion] Session for {user_id[:20]} reset to {language}")

        return session

    def history(self, user_id: str, language: str) -> List[ChatMessage]:
        return list(self.get_session(user_id, language).messages)


class ChatCompanion:
    """Turn-taking chat with the AI companion."""

    def __init__(self, service: GeminiService, sessions: Optional[ChatSessionStore] = None):
        self.service = service
        self.sessions = sessions if sessions is not None else ChatSessionStore()

    def get_session(self, user_id: str, language: str) -> ChatSession:
        return self.sessions.get_session(user_id, language)

    def _add_user_message(self, user_id: str, text: str, language: str) -> ChatSession:
        if not text or not text.strip():
            raise ChatError("Message is empty")
        session = self.get_session(user_id, language)
        session.messages.append(ChatMessage(role="user", text=text))
        return session

    async def send(self, user_id: str, text: str, language: str) -> ChatMessage:
        """
        Send a user message and return the companion's reply.

        A failed model call is surfaced as an apology message in the
        conversation; it is not retried.
        """
        session = self._add_user_message(user_id, text, language)

        try:
            reply_text = await self.service.chat(session.messages, session.language)
            reply_text = reply_text or EMPTY_REPLY_MESSAGE
        except Exception as e:
            logger.error(f"❌ [ChatCompanion] Chat call failed: {e}")
            reply_text = ERROR_REPLY_MESSAGE

        reply = ChatMessage(role="model", text=reply_text)
        session.messages.append(reply)
        return reply

    async def stream(self, user_id: str, text: str, language: str) -> AsyncGenerator[str, None]:
        """Send a user message and yield the reply as it is generated."""
        session = self._add_user_message(user_id, text, language)

        full_response = ""
        try:
            async for chunk in self.service.stream_chat(session.messages, session.language):
                full_response += chunk
                yield chunk
        except Exception as e:
            logger.error(f"❌ [ChatCompanion] Chat stream failed: {e}")
            suffix = ERROR_REPLY_MESSAGE if not full_response else f"\n\n{ERROR_REPLY_MESSAGE}"
            full_response += suffix
            yield suffix

        if not full_response:
            full_response = EMPTY_REPLY_MESSAGE
            yield full_response

        session.messages.append(ChatMessage(role="model", text=full_response))

    def history(self, user_id: str, language: str) -> List[ChatMessage]:
        return self.sessions.history(user_id, language)
