"""
Suggestion Service - Ask an LLM provider for a replacement of a highlighted range
Supports Gemini, OpenAI and vLLM (OpenAI-compatible) endpoints
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from contextlib import asynccontextmanager
from typing import Any

import aiohttp

from models.fix import FixSuggestion
from models.snippet import Snippet

from .errors import UpstreamError

logger = logging.getLogger(__name__)


def parse_json_from_response(response: str) -> dict:
    """Parse JSON from LLM response, handling code blocks"""
    # Try to extract JSON from code block
    json_match = re.search(r"```(?:json)?\s*([\s\S]*?)```", response)
    if json_match:
        json_str = json_match.group(1).strip()
    else:
        json_str = response.strip()

    try:
        return json.loads(json_str)
    except json.JSONDecodeError as e:
        # Try to find JSON object in response
        brace_start = json_str.find("{")
        brace_end = json_str.rfind("}") + 1
        if brace_start >= 0 and brace_end > brace_start:
            try:
                return json.loads(json_str[brace_start:brace_end])
            except json.JSONDecodeError:
                pass
        raise UpstreamError(f"Failed to parse suggestion JSON: {e}") from e


def build_suggestion_prompt(snippet: Snippet, comment: str) -> str:
    """Build prompt asking for a replacement of the highlighted lines"""
    numbered = "\n".join(
        f"{'>' if line.highlight else ' '} {line.line_number:>5} | {line.content}"
        for line in snippet.lines
    )

    return f"""You are reviewing a merge request. A reviewer left a comment on the
highlighted lines (marked with '>') of {snippet.path}.

REVIEWER COMMENT:
{comment}

CODE ({snippet.path}, lines {snippet.start_line}-{snippet.end_line} of {snippet.total_lines}):
```
{numbered}
```

Rewrite ONLY the highlighted lines {snippet.highlight_start}-{snippet.highlight_end} to address the comment.
Keep the surrounding indentation. Do not include line numbers or markers.

Return a JSON object with the following structure:
{{
    "summary": "One sentence describing the change",
    "updatedCode": "Replacement for the highlighted lines",
    "warnings": ["Anything the reviewer should double-check"]
}}

Return ONLY the JSON, no additional text."""


class SuggestionService:
    """Service for drafting review fixes with the configured LLM provider"""

    def __init__(self, config: dict[str, Any]):
        self.config = config
        self.provider = config.get("provider", "gemini")

    # ========== Config Helpers ==========

    def _get_gemini_config(self) -> tuple[str, str]:
        """Get Gemini config: (model, url). Raises if api_key missing."""
        cfg = self.config.get("gemini", {})
        api_key = cfg.get("apiKey")
        if not api_key:
            raise UpstreamError("Gemini API key not configured", 503)
        model = cfg.get("model", "gemini-2.5-flash")
        url = f"https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent?key={api_key}"
        return model, url

    def _get_openai_config(self) -> tuple[str, str, dict[str, str]]:
        """Get OpenAI config: (model, url, headers). Raises if api_key missing."""
        cfg = self.config.get("openai", {})
        api_key = cfg.get("apiKey")
        if not api_key:
            raise UpstreamError("OpenAI API key not configured", 503)
        model = cfg.get("model", "gpt-4")
        url = "https://api.openai.com/v1/chat/completions"
        headers = {"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"}
        return model, url, headers

    def _get_vllm_config(self) -> tuple[str, str, dict[str, str]]:
        """Get vLLM config: (model, url, headers)."""
        cfg = self.config.get("vllm", {})
        endpoint = cfg.get("endpoint", "http://localhost:8000")
        model = cfg.get("model", "default")
        url = f"{endpoint}/v1/chat/completions"
        headers = {"Content-Type": "application/json"}
        if cfg.get("apiKey"):
            headers["Authorization"] = f"Bearer {cfg['apiKey']}"
        return model, url, headers

    # ========== Payload Builders ==========

    def _build_openai_payload(self, model: str, prompt: str) -> dict[str, Any]:
        return {
            "model": model,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": 4096,
            "temperature": 0.0,
            "stream": False,
        }

    def _build_gemini_payload(self, prompt: str) -> dict[str, Any]:
        cfg = self.config.get("gemini", {})
        return {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": cfg.get("temperature", 0.0),
                "maxOutputTokens": 8192,
                "responseMimeType": "application/json",
            },
        }

    # ========== HTTP ==========

    async def _retry_with_backoff(self, operation, max_retries: int = 3, provider: str = "API"):
        """Retry rate-limited (429) and overloaded (503) calls with exponential backoff"""
        for attempt in range(max_retries):
            try:
                return await operation()
            except UpstreamError as e:
                if e.status_code not in (429, 503) or attempt == max_retries - 1:
                    raise
                wait_time = (2**attempt) * 3
                logger.warning(
                    "[SuggestionService] %s returned %d. Retrying in %ds... (attempt %d/%d)",
                    provider, e.status_code, wait_time, attempt + 1, max_retries,
                )
                await asyncio.sleep(wait_time)

    @asynccontextmanager
    async def _request(
        self,
        url: str,
        payload: dict[str, Any],
        headers: dict[str, str] | None = None,
        timeout_seconds: int = 60,
        provider: str = "API",
    ):
        """Context manager for HTTP POST requests with automatic session cleanup"""
        timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(url, json=payload, headers=headers) as response:
                    if response.status != 200:
                        error_text = await response.text()
                        logger.error("[SuggestionService] %s API Error: %s", provider, error_text)
                        raise UpstreamError(f"{provider} API error: {error_text}", response.status)
                    yield response
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise UpstreamError(f"{provider} request failed: {e}", 504) from e

    async def _request_json(
        self,
        url: str,
        payload: dict[str, Any],
        headers: dict[str, str] | None = None,
        provider: str = "API",
    ) -> dict[str, Any]:
        async def _execute_request():
            async with self._request(url, payload, headers, provider=provider) as response:
                return await response.json()

        return await self._retry_with_backoff(_execute_request, provider=provider)

    # ========== Response Parsers ==========

    def _parse_openai_response(self, data: dict[str, Any]) -> str:
        """Parse OpenAI-compatible response format"""
        if "choices" in data and len(data["choices"]) > 0:
            choice = data["choices"][0]
            if "message" in choice and "content" in choice["message"]:
                return choice["message"]["content"]
            elif "text" in choice:
                return choice["text"]
        raise UpstreamError("No valid response from API")

    def _parse_gemini_response(self, data: dict[str, Any]) -> str:
        """Parse Gemini API response format"""
        if "candidates" in data and len(data["candidates"]) > 0:
            candidate = data["candidates"][0]
            if "content" in candidate and "parts" in candidate["content"]:
                parts = candidate["content"]["parts"]
                if len(parts) > 0 and "text" in parts[0]:
                    return parts[0]["text"]
        raise UpstreamError("No valid response from Gemini API")

    # ========== Public API ==========

    async def generate_response(self, prompt: str) -> str:
        """Generate a response from the configured LLM provider"""
        if self.provider == "gemini":
            _, url = self._get_gemini_config()
            data = await self._request_json(url, self._build_gemini_payload(prompt), provider="Gemini")
            return self._parse_gemini_response(data)
        if self.provider == "openai":
            model, url, headers = self._get_openai_config()
            payload = self._build_openai_payload(model, prompt)
            data = await self._request_json(url, payload, headers, provider="OpenAI")
            return self._parse_openai_response(data)
        if self.provider == "vllm":
            model, url, headers = self._get_vllm_config()
            payload = self._build_openai_payload(model, prompt)
            data = await self._request_json(url, payload, headers, provider="vLLM")
            return self._parse_openai_response(data)
        raise UpstreamError(f"Unsupported provider: {self.provider}", 500)

    async def suggest_fix(self, snippet: Snippet, comment: str) -> FixSuggestion:
        """Draft a replacement for the snippet's highlighted lines"""
        prompt = build_suggestion_prompt(snippet, comment)
        logger.info(
            "[SuggestionService] Requesting fix for %s:%d-%d from %s",
            snippet.path, snippet.highlight_start, snippet.highlight_end, self.provider,
        )
        response = await self.generate_response(prompt)
        data = parse_json_from_response(response)
        if not isinstance(data, dict):
            raise UpstreamError(
                f"Suggestion response must be a JSON object, got {type(data).__name__}"
            )

        updated_code = data.get("updatedCode", data.get("updated_code"))
        if updated_code is None:
            raise UpstreamError("Suggestion response is missing updatedCode")

        warnings = data.get("warnings") or []
        return FixSuggestion(
            summary=data.get("summary", ""),
            updated_code=updated_code,
            warnings=[str(w) for w in warnings],
        )
