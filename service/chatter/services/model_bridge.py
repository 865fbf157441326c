"""
Model Bridge

Turns a chat question into a model request and keeps a short rolling
conversation history per session.

Usage:
    from chatter.services.model_bridge import ModelBridge

    bridge = ModelBridge(backend, workspace)
    result = await bridge.ask("How do I reverse a list?", session_id=42)
    print(result.error or result.text)

Two kinds of questions:
- plain asks carry the session history and extend it with the new pair
- context asks are single-shot: workspace snapshot + question, history is
  neither read nor written

Every failure is folded into BridgeResponse.error; ask() never raises.
"""

import asyncio
from dataclasses import dataclass
from typing import Hashable, Literal, Optional, Protocol

from chatter.logging_config import bot_logger
from .backends import ModelBackend
from .errors import BackendError, NoBackendAvailable
from .workspace import WorkspaceSnapshot

logger = bot_logger.getChild("model_bridge")

# 5 question/answer pairs
MAX_HISTORY = 10

DEFAULT_SESSION = "default"

NOT_AVAILABLE_MESSAGE = (
    "Model backend is not available. "
    "Please ensure a model provider and its API key are configured."
)


@dataclass(frozen=True)
class ConversationTurn:
    role: Literal["user", "assistant"]
    content: str

    def to_message(self) -> dict:
        return {"role": self.role, "content": self.content}


@dataclass
class BridgeResponse:
    """Answer text, or an error message with empty text."""
    text: str
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class WorkspaceContextProvider(Protocol):
    def current_context(self) -> Optional[WorkspaceSnapshot]:
        ...


class _Session:
    """History for one sender; the lock serializes every read-modify-write."""

    def __init__(self):
        self.history: list[ConversationTurn] = []
        self.lock = asyncio.Lock()
        # Bumped by clear_history so an in-flight ask knows not to append
        self.generation = 0


class ModelBridge:
    """Conversational front door to a model backend."""

    def __init__(
        self,
        backend: Optional[ModelBackend],
        workspace: Optional[WorkspaceContextProvider] = None,
        timeout: Optional[float] = 120.0,
    ):
        self.backend = backend
        self.workspace = workspace
        self.timeout = timeout
        self._sessions: dict[Hashable, _Session] = {}

    @property
    def available(self) -> bool:
        return self.backend is not None

    def _session(self, session_id: Hashable) -> _Session:
        session = self._sessions.get(session_id)
        if session is None:
            session = self._sessions[session_id] = _Session()
        return session

    def history(self, session_id: Hashable = DEFAULT_SESSION) -> tuple[ConversationTurn, ...]:
        """Snapshot of a session's history, oldest first."""
        session = self._sessions.get(session_id)
        return tuple(session.history) if session else ()

    def clear_history(self, session_id: Optional[Hashable] = None) -> None:
        """
        Forget one session's history, or every session's when no id is given.

        Takes effect immediately, without waiting for the session lock. An ask
        already waiting on the model when the clear happens gets its answer but
        does not write its pair into the cleared history.
        """
        if session_id is None:
            sessions = list(self._sessions.values())
        else:
            sessions = [self._sessions[session_id]] if session_id in self._sessions else []
        for session in sessions:
            session.history = []
            session.generation += 1
        logger.info("Conversation history cleared")

    async def ask(
        self,
        question: str,
        include_workspace_context: bool = False,
        session_id: Hashable = DEFAULT_SESSION,
    ) -> BridgeResponse:
        if self.backend is None:
            return BridgeResponse(text="", error=NOT_AVAILABLE_MESSAGE)

        logger.info(f"Using model: {self.backend.name} ({self.backend.model})")

        try:
            if include_workspace_context:
                text = await self._complete([self._context_message(question)])
            else:
                text = await self._ask_with_history(question, session_id)
        except NoBackendAvailable as e:
            logger.error(f"Model backend unavailable: {e}")
            return BridgeResponse(text="", error=str(e) or NOT_AVAILABLE_MESSAGE)
        except BackendError as e:
            logger.error(f"Model request failed: {e.message} ({e.code})")
            return BridgeResponse(text="", error=f"Model error: {e.message} ({e.code})")
        except asyncio.TimeoutError:
            logger.error(f"Model request timed out after {self.timeout}s")
            return BridgeResponse(
                text="", error=f"Unexpected error: model request timed out after {self.timeout:g}s"
            )
        except Exception as e:
            logger.error("Model request failed", exc_info=True)
            return BridgeResponse(text="", error=f"Unexpected error: {e}")

        logger.info(f"Model response: {text[:100]}...")
        return BridgeResponse(text=text)

    async def _ask_with_history(self, question: str, session_id: Hashable) -> str:
        session = self._session(session_id)
        async with session.lock:
            messages = [turn.to_message() for turn in session.history]
            messages.append({"role": "user", "content": question})

            generation = session.generation
            text = await self._complete(messages)

            if generation != session.generation:
                logger.info("History cleared during the request, answer not recorded")
                return text
            if not text.strip():
                # Model APIs reject empty assistant turns
                logger.warning("Empty model answer, not recorded in history")
                return text

            session.history.append(ConversationTurn("user", question))
            session.history.append(ConversationTurn("assistant", text))
            if len(session.history) > MAX_HISTORY:
                session.history = session.history[-MAX_HISTORY:]
        return text

    async def _complete(self, messages: list[dict]) -> str:
        if self.timeout:
            return await asyncio.wait_for(self.backend.complete(messages), self.timeout)
        return await self.backend.complete(messages)

    def _context_message(self, question: str) -> dict:
        snapshot = self.workspace.current_context() if self.workspace else None
        if snapshot is None:
            return {"role": "user", "content": question}
        return {
            "role": "user",
            "content": f"Workspace context:\n{snapshot.render()}\n\nUser question: {question}",
        }
