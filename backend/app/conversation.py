#!/usr/bin/env python3
"""
Conversation log for the chat widget.

Holds the ordered, append-only list of ChatMessage objects for one widget
instance and applies a session reply to it, whole or fragment by fragment.
Updates are addressed by message id, so a reply that arrives for a message
that is no longer in the log is dropped.
"""

import threading
import time
import weakref
from typing import Iterator, List, Optional

from .session import ChatSession, SessionBusyError, SessionState, send_message, stream_message
from ..schemas.io_models import ChatMessage, Role
from ..utils.logger import get_logger

logger = get_logger("conversation")

WELCOME_TEMPLATE = "Hi there! Welcome to {store_name}. How can I help you today?"
ERROR_NOTE = "I encountered an error. Please try again."

_id_lock = threading.Lock()
_last_id = 0


def new_message_id() -> str:
    """Time-derived id, strictly increasing within the process."""
    global _last_id
    with _id_lock:
        _last_id = max(time.time_ns(), _last_id + 1)
        return str(_last_id)


class ConversationLog:
    """Ordered chat messages for one widget instance."""

    def __init__(self, store_name: str):
        self.store_name = store_name
        self._lock = threading.Lock()
        self.messages: List[ChatMessage] = [
            ChatMessage(id=new_message_id(), role=Role.model, text=WELCOME_TEMPLATE.format(store_name=store_name))
        ]

    def get(self, message_id: str) -> Optional[ChatMessage]:
        for msg in self.messages:
            if msg.id == message_id:
                return msg
        return None

    def _append(self, role: Role, text: str = "", streaming: bool = False) -> ChatMessage:
        msg = ChatMessage(id=new_message_id(), role=role, text=text, is_streaming=streaming)
        with self._lock:
            self.messages.append(msg)
        return msg

    def add_user_message(self, text: str) -> ChatMessage:
        return self._append(Role.user, text)

    def add_model_placeholder(self, streaming: bool = True) -> ChatMessage:
        return self._append(Role.model, "", streaming)

    def append_fragment(self, message_id: str, fragment: str) -> bool:
        """Grow a streaming message; False if it is gone or already finished."""
        with self._lock:
            msg = self.get(message_id)
            if msg is None or not msg.is_streaming:
                return False
            msg.text += fragment
            return True

    def finish(self, message_id: str, note: Optional[str] = None) -> bool:
        """Close a streaming message, optionally appending a terminal note."""
        with self._lock:
            msg = self.get(message_id)
            if msg is None or not msg.is_streaming:
                return False
            if note:
                msg.text = f"{msg.text}\n\n{note}" if msg.text else note
            msg.is_streaming = False
            return True

    @staticmethod
    def _ensure_idle(session: ChatSession):
        if session.state is SessionState.sending:
            raise SessionBusyError("Wait for the current reply before sending another message")

    def reply(self, session: ChatSession, text: str) -> ChatMessage:
        """Send a message and record the complete reply."""
        self._ensure_idle(session)
        self.add_user_message(text)
        try:
            answer = send_message(session, text)
        except SessionBusyError:
            raise
        except Exception as e:
            logger.exception(f"Chat turn failed: {e}")
            answer = ERROR_NOTE
        return self._append(Role.model, answer)

    def stream_reply(self, session: ChatSession, text: str) -> Iterator[str]:
        """
        Send a message and yield reply fragments while filling the model message.

        If the fragment source raises, the partial text is kept and ERROR_NOTE
        is appended. Closing this iterator early, or dropping it unread, closes
        the source and marks the message finished with whatever text had arrived.
        """
        self._ensure_idle(session)
        stream = stream_message(session, text)
        self.add_user_message(text)
        placeholder = self.add_model_placeholder(streaming=True)
        fragments = self._consume(stream, placeholder.id)
        weakref.finalize(fragments, self.finish, placeholder.id)
        return fragments

    def _consume(self, stream, message_id: str) -> Iterator[str]:
        try:
            for fragment in stream:
                if not self.append_fragment(message_id, fragment):
                    # message is gone or already finalized
                    break
                yield fragment
        except Exception as e:
            logger.exception(f"Streaming reply failed: {e}")
            self.finish(message_id, ERROR_NOTE)
            yield ERROR_NOTE
        finally:
            stream.close()
            self.finish(message_id)

    def to_list(self) -> List[ChatMessage]:
        with self._lock:
            return list(self.messages)
