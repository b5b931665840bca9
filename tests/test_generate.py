#!/usr/bin/env python3
import io
import json
import os
import sys
import unittest
from unittest.mock import MagicMock, patch

import requests

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))
from backend.app.config import Config, ConfigurationError
from backend.app.generate import GenerationClient, GenerationError


def gemini_body(*texts):
    return {"candidates": [{"content": {"role": "model", "parts": [{"text": t} for t in texts]}}]}


class TestGenerationClient(unittest.TestCase):

    def setUp(self):
        self.client = GenerationClient(api_key="test-key", model="gemini-test")
        self.contents = [{"role": "user", "parts": [{"text": "Hi"}]}]

    def test_requires_api_key(self):
        with patch.object(Config, "GEMINI_API_KEY", None):
            with self.assertRaises(ConfigurationError):
                GenerationClient()

    @patch("backend.app.generate.requests.post")
    def test_generate_answer(self, mock_post):
        mock_post.return_value = MagicMock(status_code=200, json=MagicMock(return_value=gemini_body("Hi ", "there ")))
        answer = self.client.generate_answer("Be nice.", self.contents)
        self.assertEqual(answer, "Hi there")

        args, kwargs = mock_post.call_args
        self.assertTrue(args[0].endswith("/models/gemini-test:generateContent"))
        self.assertEqual(kwargs["params"], {"key": "test-key"})
        payload = kwargs["json"]
        self.assertEqual(payload["systemInstruction"]["parts"][0]["text"], "Be nice.")
        self.assertEqual(payload["contents"], self.contents)
        self.assertIn("temperature", payload["generationConfig"])
        self.assertIn("maxOutputTokens", payload["generationConfig"])

    @patch("backend.app.generate.requests.post")
    def test_no_candidates_is_empty(self, mock_post):
        mock_post.return_value = MagicMock(status_code=200, json=MagicMock(return_value={"candidates": []}))
        self.assertEqual(self.client.generate_answer("x", self.contents), "")

    @patch("backend.app.generate.requests.post")
    def test_http_error(self, mock_post):
        response = MagicMock(status_code=500, text="internal")
        response.raise_for_status.side_effect = requests.HTTPError("500 Server Error")
        mock_post.return_value = response
        with self.assertRaises(GenerationError):
            self.client.generate_answer("x", self.contents)

    @patch("backend.app.generate.requests.post")
    def test_connection_error(self, mock_post):
        mock_post.side_effect = requests.ConnectionError("refused")
        with self.assertRaises(GenerationError):
            self.client.generate_answer("x", self.contents)

    @patch("backend.app.generate.requests.post")
    def test_stream_answer(self, mock_post):
        response = MagicMock(status_code=200)
        response.iter_lines.return_value = iter([
            "data: " + json.dumps(gemini_body("Hel")),
            "",
            "data: " + json.dumps(gemini_body("lo")),
            "data: " + json.dumps({"candidates": [{"finishReason": "STOP"}]}),
        ])
        mock_post.return_value = response

        fragments = list(self.client.stream_answer("x", self.contents))
        self.assertEqual(fragments, ["Hel", "lo"])
        _, kwargs = mock_post.call_args
        self.assertEqual(kwargs["params"]["alt"], "sse")
        self.assertTrue(kwargs["stream"])
        response.close.assert_called_once()

    @patch("backend.app.generate.requests.post")
    def test_stream_closed_early(self, mock_post):
        response = MagicMock(status_code=200)
        response.iter_lines.return_value = iter(["data: " + json.dumps(gemini_body(str(i))) for i in range(5)])
        mock_post.return_value = response

        stream = self.client.stream_answer("x", self.contents)
        self.assertEqual(next(stream), "0")
        stream.close()
        response.close.assert_called_once()

    @patch("backend.app.generate.requests.post")
    def test_stream_decodes_utf8_without_charset(self, mock_post):
        body = "data: " + json.dumps(gemini_body("Café €5"), ensure_ascii=False) + "\r\n\r\n"
        response = requests.Response()
        response.status_code = 200
        response.headers["Content-Type"] = "text/event-stream"
        response.raw = io.BytesIO(body.encode("utf-8"))
        # what requests derives from a text/* content type without a charset
        response.encoding = "ISO-8859-1"
        mock_post.return_value = response

        fragments = list(self.client.stream_answer("x", self.contents))
        self.assertEqual(fragments, ["Café €5"])

    @patch("backend.app.generate.requests.post")
    def test_stream_bad_chunk(self, mock_post):
        response = MagicMock(status_code=200)
        response.iter_lines.return_value = iter(["data: {broken"])
        mock_post.return_value = response
        with self.assertRaises(GenerationError):
            list(self.client.stream_answer("x", self.contents))
        response.close.assert_called_once()


if __name__ == '__main__':
    unittest.main()
