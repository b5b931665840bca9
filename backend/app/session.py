#!/usr/bin/env python3
"""
Chat session module for the store assistant.

A ChatSession is an explicit handle bound to one system instruction. Turns are
issued through send_message (whole reply) or stream_message (fragments). The
handle keeps the conversation memory sent to Gemini with each turn; it is not
persisted anywhere.
"""

import threading
import weakref
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional

from .config import ConfigurationError
from .generate import GenerationClient, GenerationError
from ..utils.logger import get_logger

logger = get_logger("session")

FALLBACK_REPLY = "I'm having trouble connecting to the store's brain right now. Please try again later."
EMPTY_REPLY = "I'm sorry, I couldn't generate a response."


class SessionState(str, Enum):
    ready = "ready"
    sending = "sending"


class SessionBusyError(RuntimeError):
    """A turn was issued while the previous one on the same handle is still in flight."""


class ChatSession:
    """Handle for one conversation bound to an immutable system instruction."""

    def __init__(self, system_instruction: str, client: GenerationClient):
        self._system_instruction = system_instruction
        self.client = client
        self.history: List[Dict[str, Any]] = []
        self.state = SessionState.ready
        self._state_lock = threading.Lock()

    @property
    def system_instruction(self) -> str:
        return self._system_instruction

    def _begin_turn(self):
        with self._state_lock:
            if self.state is SessionState.sending:
                raise SessionBusyError("A message is already being sent on this session")
            self.state = SessionState.sending

    def _end_turn(self):
        with self._state_lock:
            self.state = SessionState.ready

    def _contents_for(self, text: str) -> List[Dict[str, Any]]:
        return self.history + [{"role": "user", "parts": [{"text": text}]}]

    def _record_turn(self, user_text: str, reply: str):
        self.history.append({"role": "user", "parts": [{"text": user_text}]})
        self.history.append({"role": "model", "parts": [{"text": reply}]})


def initialize_session(system_instruction: str, client: Optional[GenerationClient] = None) -> ChatSession:
    """
    Bind a system instruction to a new session.

    Raises:
        ConfigurationError: no Gemini key is configured
    """
    if client is None:
        client = GenerationClient()
    if not getattr(client, "api_key", None):
        raise ConfigurationError("Gemini API key is required (set GEMINI_API_KEY)")
    return ChatSession(system_instruction, client)


def send_message(session: ChatSession, text: str) -> str:
    """
    Send one user turn and return the complete reply.

    Capability failures come back as FALLBACK_REPLY instead of raising.
    """
    session._begin_turn()
    try:
        reply = session.client.generate_answer(session.system_instruction, session._contents_for(text))
    except GenerationError as e:
        logger.error(f"Gemini API error: {e}")
        return FALLBACK_REPLY
    finally:
        session._end_turn()

    if not reply:
        return EMPTY_REPLY
    session._record_turn(text, reply)
    return reply


def stream_message(session: ChatSession, text: str) -> Iterator[str]:
    """
    Send one user turn and yield the reply as it arrives.

    The iterator is finite and cannot be restarted. A failure yields
    FALLBACK_REPLY as the last fragment. Closing the iterator early, or
    dropping it without reading, releases the session and the upstream
    response; the turn is not kept in the session memory.
    """
    session._begin_turn()
    return ReplyStream(session, text)


class ReplyStream:
    """Iterator over one streamed reply; close() may be called at any point."""

    def __init__(self, session: ChatSession, text: str):
        # runs once: on close, when the reply ends, or when this object is collected
        self._release = weakref.finalize(self, session._end_turn)
        self._gen = _run_stream(session, text, self._release)

    def __iter__(self):
        return self

    def __next__(self) -> str:
        return next(self._gen)

    def close(self):
        self._gen.close()
        # an unstarted generator skips its finally block on close
        self._release()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
        return False


def _run_stream(session: ChatSession, text: str, release: Callable[[], Any]) -> Iterator[str]:
    fragments = []
    upstream = None
    try:
        upstream = session.client.stream_answer(session.system_instruction, session._contents_for(text))
        for fragment in upstream:
            fragments.append(fragment)
            yield fragment
    except GenerationError as e:
        logger.error(f"Gemini API error: {e}")
        yield ("\n\n" if fragments else "") + FALLBACK_REPLY
        return
    finally:
        if upstream is not None and hasattr(upstream, "close"):
            upstream.close()
        release()

    if fragments:
        session._record_turn(text, "".join(fragments))
    else:
        yield EMPTY_REPLY


def reset_session(session: ChatSession, system_instruction: Optional[str] = None) -> ChatSession:
    """
    Start a fresh session sharing the old handle's client.

    The old handle is left as it was; pass a new instruction after the store
    data has changed.
    """
    instruction = session.system_instruction if system_instruction is None else system_instruction
    return ChatSession(instruction, session.client)
