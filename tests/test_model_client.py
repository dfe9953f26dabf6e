"""
Tests for the Ollama model client and the stream / JSON helpers.

HTTP goes through httpx.MockTransport. The generation deadline test
streams from a local asyncio server instead, since it needs real timing.
"""

import asyncio
import json
import time
import unittest

import httpx

from explorer.config import ModelConfig
from explorer.core.model_client import (
    OllamaClient,
    collect_stream,
    extract_json_block,
    iter_stream_text,
    parse_model_json,
)
from explorer.core.result import Err, Ok
from explorer.core.schemas import ReportResponse, ScopeResponse
from explorer.errors import ModelBackendError, ModelResponseError


def _ndjson(*chunks) -> bytes:
    return "\n".join(json.dumps(c) for c in chunks).encode() + b"\n"


def _client(handler, **config) -> OllamaClient:
    return OllamaClient(ModelConfig(**config), transport=httpx.MockTransport(handler))


def _tags(*names):
    return httpx.Response(200, json={"models": [{"name": n} for n in names]})


class TestStreamParsing(unittest.IsolatedAsyncioTestCase):

    async def test_accumulates_fragments_and_skips_malformed_lines(self):
        lines = ['{"response":"A"}', '{"response":"B"}', "not-json", '{"done":true}']
        self.assertEqual(await collect_stream(lines), "AB")

    async def test_stops_after_done_line(self):
        lines = ['{"response":"A"}', '{"response":"B","done":true}', '{"response":"C"}']
        self.assertEqual(await collect_stream(lines), "AB")

    async def test_ignores_blank_and_non_object_lines(self):
        lines = ["", "   ", "[1, 2]", '"text"', '{"response":"ok"}']
        self.assertEqual(await collect_stream(lines), "ok")

    async def test_accepts_async_iterables(self):
        async def source():
            yield '{"response":"x"}'
            yield '{"response":"y"}'

        fragments = [f async for f in iter_stream_text(source())]
        self.assertEqual(fragments, ["x", "y"])


class TestJsonExtraction(unittest.TestCase):

    def test_extracts_block_from_prose(self):
        text = 'Here you go:\n{"a": {"b": 1}}\nThanks!'
        self.assertEqual(extract_json_block(text), '{"a": {"b": 1}}')

    def test_ignores_braces_inside_strings(self):
        text = '{"summary": "use } and { freely", "n": 1} trailing'
        self.assertEqual(json.loads(extract_json_block(text))["n"], 1)

    def test_handles_escaped_quotes(self):
        text = '{"s": "say \\"}\\" ok"}'
        self.assertEqual(json.loads(extract_json_block(text))["s"], 'say "}" ok')

    def test_truncated_block_raises(self):
        text = '{"routes": [{"path": "/admin", "name": "Admin"}, {"path": "/bil'
        with self.assertRaises(ModelResponseError):
            extract_json_block(text)

    def test_only_the_first_block_is_considered(self):
        text = 'broken { start then {"ok": true}'
        with self.assertRaises(ModelResponseError):
            extract_json_block(text)

    def test_no_block_raises(self):
        with self.assertRaises(ModelResponseError):
            extract_json_block("no json here")

    def test_parse_model_json_applies_defaults(self):
        scope = parse_model_json('{"routes": [{"path": "/x"}], "riskLevel": "HIGH"}', ScopeResponse)
        self.assertEqual(scope.routes[0].path, "/x")
        self.assertEqual(scope.routes[0].root_selector, 'main, [data-testid="app"], body')
        self.assertEqual(scope.risk_level, "high")
        self.assertEqual(scope.components, [])

    def test_parse_model_json_normalizes_report(self):
        report = parse_model_json('{"verdict": "maybe", "confidence": "HUGE"}', ReportResponse)
        self.assertIsNone(report.verdict)
        self.assertEqual(report.confidence, "medium")

    def test_parse_model_json_rejects_schema_mismatch(self):
        with self.assertRaises(ModelResponseError):
            parse_model_json('{"routes": [{"name": "no path"}]}', ScopeResponse)

    def test_parse_model_json_requires_a_known_key(self):
        with self.assertRaises(ModelResponseError):
            parse_model_json('{"path": "/admin", "name": "Admin"}', ScopeResponse)
        with self.assertRaises(ModelResponseError):
            parse_model_json('{"title": "t", "severity": "error"}', ReportResponse)

    def test_parse_model_json_accepts_camel_case_keys(self):
        report = parse_model_json('{"topIssues": []}', ReportResponse)
        self.assertEqual(report.top_issues, [])


class TestAvailability(unittest.IsolatedAsyncioTestCase):

    async def test_keeps_configured_model_when_advertised(self):
        client = _client(lambda request: _tags("gemma3:4b", "llama3:8b"))
        self.assertTrue(await client.check_availability())
        self.assertEqual(client.model, "gemma3:4b")
        await client.close()

    async def test_switches_to_first_advertised_model(self):
        client = _client(lambda request: _tags("llama3:8b", "mistral:7b"))
        self.assertTrue(await client.check_availability())
        self.assertEqual(client.model, "llama3:8b")
        await client.close()

    async def test_no_models_means_unavailable(self):
        client = _client(lambda request: _tags())
        self.assertFalse(await client.check_availability())
        await client.close()

    async def test_connection_error_means_unavailable(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        client = _client(handler)
        self.assertFalse(await client.check_availability())
        await client.close()

    async def test_availability_is_cached(self):
        calls = []

        def handler(request):
            calls.append(request.url.path)
            return _tags("gemma3:4b")

        client = _client(handler)
        await client.check_availability()
        await client.check_availability()
        self.assertEqual(calls, ["/api/tags"])
        await client.close()


class TestGeneration(unittest.IsolatedAsyncioTestCase):

    async def test_generate_streams_and_sends_options(self):
        seen = {}

        def handler(request):
            seen.update(json.loads(request.content))
            return httpx.Response(200, content=_ndjson(
                {"response": "Hel"}, {"response": "lo"}, {"done": True}
            ))

        client = _client(handler)
        result = await client.generate("hi", {"temperature": 0.1})
        self.assertIsInstance(result, Ok)
        self.assertEqual(result.value, "Hello")
        self.assertTrue(seen["stream"])
        self.assertEqual(seen["options"], {"temperature": 0.1})
        self.assertEqual(seen["model"], "gemma3:4b")
        await client.close()

    async def test_http_error_status_is_err(self):
        client = _client(lambda request: httpx.Response(500, text="boom"))
        result = await client.generate("hi")
        self.assertIsInstance(result, Err)
        self.assertIsInstance(result.error, ModelBackendError)
        await client.close()

    async def test_timeout_is_err(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        client = _client(handler)
        result = await client.generate("hi")
        self.assertIsInstance(result.error, ModelBackendError)
        await client.close()

    async def test_empty_text_is_err(self):
        client = _client(lambda request: httpx.Response(200, content=_ndjson({"done": True})))
        result = await client.generate("hi")
        self.assertIsInstance(result.error, ModelResponseError)
        await client.close()

    async def test_generate_json_end_to_end(self):
        body = json.dumps({"summary": "fine", "verdict": "pass"})

        def handler(request):
            if request.url.path == "/api/tags":
                return _tags("gemma3:4b")
            return httpx.Response(200, content=_ndjson({"response": "Sure! " + body}, {"done": True}))

        async with _client(handler) as client:
            result = await client.generate_json("write", ReportResponse)
        self.assertTrue(result.is_ok)
        self.assertEqual(result.value.verdict, "PASS")
        self.assertEqual(result.value.summary, "fine")

    async def test_generate_json_when_backend_down(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        async with _client(handler) as client:
            result = await client.generate_json("write", ReportResponse)
        self.assertFalse(result.is_ok)
        self.assertIsInstance(result.error, ModelBackendError)

    async def test_generate_json_with_unparseable_text(self):
        def handler(request):
            if request.url.path == "/api/tags":
                return _tags("gemma3:4b")
            return httpx.Response(200, content=_ndjson({"response": "I cannot help"}, {"done": True}))

        async with _client(handler) as client:
            result = await client.generate_json("write", ScopeResponse)
        self.assertIsInstance(result.error, ModelResponseError)


class TestGenerationDeadline(unittest.IsolatedAsyncioTestCase):
    """A stream that keeps trickling lines is cut off at generate_timeout overall."""

    async def asyncSetUp(self):
        self.server = await asyncio.start_server(self._trickle, "127.0.0.1", 0)
        port = self.server.sockets[0].getsockname()[1]
        self.base_url = f"http://127.0.0.1:{port}"

    async def asyncTearDown(self):
        self.server.close()
        await self.server.wait_closed()

    @staticmethod
    async def _trickle(reader, writer):
        head = await reader.readuntil(b"\r\n\r\n")
        length = 0
        for line in head.decode().split("\r\n"):
            if line.lower().startswith("content-length:"):
                length = int(line.split(":", 1)[1])
        if length:
            await reader.readexactly(length)
        try:
            writer.write(b"HTTP/1.1 200 OK\r\nContent-Type: application/x-ndjson\r\nConnection: close\r\n\r\n")
            for _ in range(20):
                if reader.at_eof() or writer.is_closing():
                    break
                writer.write(b'{"response":"."}\n')
                await writer.drain()
                await asyncio.sleep(0.2)
            writer.write(b'{"done":true}\n')
            await writer.drain()
        except ConnectionError:
            pass
        finally:
            writer.close()

    async def test_slow_stream_is_bounded_by_generate_timeout(self):
        client = OllamaClient(ModelConfig(base_url=self.base_url, generate_timeout=0.6))
        started = time.monotonic()
        result = await client.generate("hi")
        elapsed = time.monotonic() - started
        await client.close()

        self.assertFalse(result.is_ok)
        self.assertIsInstance(result.error, ModelBackendError)
        self.assertLess(elapsed, 2.0)


class TestResult(unittest.TestCase):

    def test_ok_ignores_fallback(self):
        self.assertEqual(Ok(2).map(lambda v: v * 3).or_else(lambda e: 0), 6)

    def test_err_uses_fallback(self):
        err = Err(ValueError("x"))
        self.assertIs(err.map(lambda v: v * 3), err)
        self.assertEqual(err.or_else(lambda e: str(e)), "x")
        with self.assertRaises(ValueError):
            err.unwrap()


if __name__ == "__main__":
    unittest.main()
