"""
Ollama Model Client: thin async wrapper around the Ollama HTTP API.

Responsibilities:
1. Check availability (GET /api/tags) and settle which model to use.
2. Stream completions (POST /api/generate, NDJSON) into a single string.
3. Extract and validate the JSON object the prompts ask for.

Every public call returns a Result instead of raising, so callers attach
their deterministic fallback with `.or_else(...)`.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, AsyncIterator, Iterable, Mapping, Optional, Type, TypeVar, Union

import httpx
from pydantic import BaseModel, ValidationError as SchemaValidationError

from explorer.config import ModelConfig
from explorer.core.result import Err, Ok, Result
from explorer.errors import ModelBackendError, ModelResponseError

logger = logging.getLogger(__name__)

SchemaT = TypeVar("SchemaT", bound=BaseModel)


# ── Stream parsing (transport independent) ──

async def iter_stream_text(lines: Union[AsyncIterator[str], Iterable[str]]) -> AsyncIterator[str]:
    """
    Yield the `response` fragments of an Ollama NDJSON stream.

    Each line is parsed on its own. Malformed lines are skipped, and a line
    carrying `done: true` ends consumption.
    """
    if hasattr(lines, "__aiter__"):
        source = lines
    else:
        source = _aiter(lines)

    async for raw in source:
        line = raw.strip()
        if not line:
            continue
        try:
            data = json.loads(line)
        except json.JSONDecodeError:
            logger.debug(f"Skipping malformed stream line: {line[:80]!r}")
            continue
        if not isinstance(data, dict):
            continue
        fragment = data.get("response")
        if isinstance(fragment, str) and fragment:
            yield fragment
        if data.get("done"):
            break


async def collect_stream(lines: Union[AsyncIterator[str], Iterable[str]]) -> str:
    """Concatenate every fragment of a stream."""
    parts = [fragment async for fragment in iter_stream_text(lines)]
    return "".join(parts)


async def _aiter(items: Iterable[str]) -> AsyncIterator[str]:
    for item in items:
        yield item


def extract_json_block(text: str) -> str:
    """
    Return the balanced {...} block that starts at the first `{` in `text`.

    Braces inside JSON string literals are ignored. Raises ModelResponseError
    when there is no `{` or that block never closes (truncated output).
    """
    start = text.find("{")
    if start == -1:
        raise ModelResponseError("No JSON object found in model response")

    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start:i + 1]
    raise ModelResponseError("Model response JSON is unbalanced (truncated output?)")


def _expected_keys(schema: Type[BaseModel]) -> set[str]:
    keys = set()
    for name, info in schema.model_fields.items():
        keys.add(name)
        if info.alias:
            keys.add(info.alias)
    return keys


def parse_model_json(text: str, schema: Type[SchemaT]) -> SchemaT:
    """
    Parse the first JSON block of `text` and validate it against `schema`.

    The object must carry at least one of the schema's top-level keys.
    """
    block = extract_json_block(text)
    try:
        data = json.loads(block)
    except json.JSONDecodeError as e:
        raise ModelResponseError(f"Model returned invalid JSON: {e}") from e
    if not isinstance(data, dict) or not _expected_keys(schema) & data.keys():
        raise ModelResponseError(f"Model JSON has none of the {schema.__name__} keys")
    try:
        return schema.model_validate(data)
    except SchemaValidationError as e:
        raise ModelResponseError(f"Model JSON does not match {schema.__name__}: {e}") from e


# ── Client ──

class OllamaClient:
    """
    Async client for a local Ollama server.

    Usage:
        async with OllamaClient(config.model) as client:
            result = await client.generate_json(prompt, ScopeResponse, options)
            scope = result.or_else(lambda err: fallback())
    """

    def __init__(self, config: ModelConfig, *, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self.model = config.model
        self._available: Optional[bool] = None
        self._client = httpx.AsyncClient(
            base_url=config.base_url.rstrip("/"),
            timeout=config.generate_timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "OllamaClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    # ── Availability ──

    async def check_availability(self) -> bool:
        """
        Query GET /api/tags once per client.

        If the configured model is not advertised, the first advertised model
        is used instead. Never raises.
        """
        if self._available is not None:
            return self._available

        try:
            resp = await self._client.get("/api/tags", timeout=self.config.tags_timeout)
            resp.raise_for_status()
            models = [m.get("name", "") for m in resp.json().get("models", []) if isinstance(m, dict)]
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Model backend unavailable at {self.config.base_url}: {e}")
            self._available = False
            return False

        if not models:
            logger.warning("Model backend reachable but advertises no models")
            self._available = False
            return False

        family = self.config.model.split(":")[0]
        if not any(family in name for name in models):
            logger.info(f"Model '{self.config.model}' not found, using '{models[0]}'")
            self.model = models[0]

        self._available = True
        return True

    # ── Generation ──

    async def generate(self, prompt: str, options: Optional[Mapping[str, Any]] = None) -> Result[str]:
        """Stream one completion and return the concatenated text."""
        body = {
            "model": self.model,
            "prompt": prompt,
            "options": dict(options or {}),
            "stream": True,
        }
        logger.debug(
            f"Generating with {self.model} (policy {self.config.sampling_policy_hash}, "
            f"{len(prompt)} chars)"
        )
        try:
            text = await asyncio.wait_for(self._stream_text(body), timeout=self.config.generate_timeout)
        except asyncio.TimeoutError:
            return Err(ModelBackendError(
                f"Model generation exceeded {self.config.generate_timeout}s"
            ))
        except httpx.TimeoutException as e:
            return Err(ModelBackendError(f"Model generation timed out: {e}"))
        except httpx.HTTPError as e:
            return Err(ModelBackendError(f"Model backend HTTP error: {e}"))
        except ModelBackendError as e:
            return Err(e)

        if not text.strip():
            return Err(ModelResponseError("Model returned an empty response"))
        return Ok(text)

    async def _stream_text(self, body: dict[str, Any]) -> str:
        async with self._client.stream("POST", "/api/generate", json=body) as resp:
            if resp.status_code >= 400:
                await resp.aread()
                raise ModelBackendError(
                    f"Model backend returned {resp.status_code}: {resp.text[:200]}"
                )
            return await collect_stream(resp.aiter_lines())

    async def generate_json(
        self,
        prompt: str,
        schema: Type[SchemaT],
        options: Optional[Mapping[str, Any]] = None,
    ) -> Result[SchemaT]:
        """Check availability, generate and validate in one call."""
        if not await self.check_availability():
            return Err(ModelBackendError("Model backend is not available"))

        result = await self.generate(prompt, options)
        if not result.is_ok:
            return result
        try:
            return Ok(parse_model_json(result.value, schema))
        except ModelResponseError as e:
            return Err(e)
