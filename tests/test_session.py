#!/usr/bin/env python3
import gc
import os
import sys
import unittest
from unittest.mock import patch

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))
sys.path.insert(0, os.path.dirname(__file__))
from backend.app.config import Config, ConfigurationError
from backend.app.generate import GenerationError
from backend.app.session import (
    EMPTY_REPLY,
    FALLBACK_REPLY,
    SessionBusyError,
    SessionState,
    initialize_session,
    reset_session,
    send_message,
    stream_message,
)
from fakes import FakeClient


class TestInitialize(unittest.TestCase):

    def test_missing_key_is_configuration_error(self):
        with patch.object(Config, "GEMINI_API_KEY", None):
            with self.assertRaises(ConfigurationError):
                initialize_session("instruction")

    def test_client_without_key_is_rejected(self):
        with self.assertRaises(ConfigurationError):
            initialize_session("instruction", FakeClient(api_key=None))

    def test_ready_after_initialize(self):
        session = initialize_session("You help Shop.", FakeClient())
        self.assertEqual(session.state, SessionState.ready)
        self.assertEqual(session.system_instruction, "You help Shop.")
        self.assertEqual(session.history, [])


class TestSendMessage(unittest.TestCase):

    def setUp(self):
        self.client = FakeClient(reply="We ship in 3-5 days.")
        self.session = initialize_session("You help Shop.", self.client)

    def test_reply_and_memory(self):
        self.assertEqual(send_message(self.session, "Shipping?"), "We ship in 3-5 days.")
        send_message(self.session, "And returns?")
        instruction, contents = self.client.calls[-1]
        self.assertEqual(instruction, "You help Shop.")
        self.assertEqual([c["role"] for c in contents], ["user", "model", "user"])
        self.assertEqual(contents[-1]["parts"][0]["text"], "And returns?")
        self.assertEqual(len(self.session.history), 4)

    def test_capability_failure_returns_fallback(self):
        self.client.error = GenerationError("timeout")
        self.assertEqual(send_message(self.session, "Hi"), FALLBACK_REPLY)
        self.assertEqual(self.session.state, SessionState.ready)
        self.assertEqual(self.session.history, [])

    def test_empty_reply(self):
        self.client.reply = ""
        self.assertEqual(send_message(self.session, "Hi"), EMPTY_REPLY)


class TestStreamMessage(unittest.TestCase):

    def setUp(self):
        self.client = FakeClient(fragments=["The lamp ", "is out ", "of stock."])
        self.session = initialize_session("You help Shop.", self.client)

    def test_fragments_concatenate_to_reply(self):
        fragments = list(stream_message(self.session, "Lamp?"))
        self.assertEqual(fragments, ["The lamp ", "is out ", "of stock."])
        self.assertEqual(self.session.history[-1]["parts"][0]["text"], "The lamp is out of stock.")
        self.assertEqual(self.session.state, SessionState.ready)

    def test_failure_before_any_fragment(self):
        self.client.error = GenerationError("503")
        self.assertEqual(list(stream_message(self.session, "Lamp?")), [FALLBACK_REPLY])
        self.assertEqual(self.session.history, [])

    def test_failure_mid_stream_keeps_partial(self):
        self.client.error = GenerationError("reset")
        self.client.fail_after = 1
        fragments = list(stream_message(self.session, "Lamp?"))
        self.assertEqual(fragments, ["The lamp ", "\n\n" + FALLBACK_REPLY])
        self.assertEqual(self.session.state, SessionState.ready)

    def test_empty_stream(self):
        self.client.fragments = []
        self.assertEqual(list(stream_message(self.session, "Lamp?")), [EMPTY_REPLY])

    def test_second_turn_while_streaming_is_rejected(self):
        stream = stream_message(self.session, "Lamp?")
        next(stream)
        self.assertEqual(self.session.state, SessionState.sending)
        with self.assertRaises(SessionBusyError):
            send_message(self.session, "Hello?")
        stream.close()
        self.assertEqual(self.session.state, SessionState.ready)

    def test_early_close_releases_upstream(self):
        stream = stream_message(self.session, "Lamp?")
        next(stream)
        self.assertFalse(self.client.stream_closed)
        stream.close()
        self.assertTrue(self.client.stream_closed)
        # abandoned turns are not remembered
        self.assertEqual(self.session.history, [])
        with self.assertRaises(StopIteration):
            next(stream)

    def test_close_before_start(self):
        stream = stream_message(self.session, "Lamp?")
        stream.close()
        self.assertEqual(self.session.state, SessionState.ready)

    def test_dropped_before_start_releases_session(self):
        stream_message(self.session, "Lamp?")
        gc.collect()
        self.assertEqual(self.session.state, SessionState.ready)
        self.assertEqual(send_message(self.session, "Hello?"), "Hello!")

    def test_dropped_mid_stream_releases_upstream(self):
        stream = stream_message(self.session, "Lamp?")
        next(stream)
        del stream
        gc.collect()
        self.assertTrue(self.client.stream_closed)
        self.assertEqual(self.session.state, SessionState.ready)
        self.assertEqual(self.session.history, [])


class TestResetSession(unittest.TestCase):

    def test_reset_gives_fresh_handle(self):
        client = FakeClient()
        old = initialize_session("old instruction", client)
        send_message(old, "Hi")

        new = reset_session(old, "new instruction")
        self.assertIsNot(new, old)
        self.assertEqual(new.system_instruction, "new instruction")
        self.assertEqual(new.history, [])
        self.assertEqual(old.system_instruction, "old instruction")
        self.assertEqual(len(old.history), 2)

    def test_reset_keeps_instruction_by_default(self):
        old = initialize_session("same", FakeClient())
        self.assertEqual(reset_session(old).system_instruction, "same")


if __name__ == '__main__':
    unittest.main()
