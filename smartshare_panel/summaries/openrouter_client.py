"""OpenRouter access for the summarizer engine: chat replies and the model catalog."""
from __future__ import annotations

import json
import logging
import random
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

import httpx

logger = logging.getLogger(__name__)


class OpenRouterError(RuntimeError):
    """Base error raised for OpenRouter failures."""


class AuthenticationError(OpenRouterError):
    """Raised when the API key is missing or invalid."""


class RateLimitError(OpenRouterError):
    """Raised when OpenRouter returns HTTP 429 after retries."""


class TransientError(OpenRouterError):
    """Raised for recoverable failures that outlived the retry budget."""


class ClientConfigurationError(OpenRouterError):
    """Raised when OpenRouter answers with a payload we cannot read."""


class OpenRouterClient:
    """Blocking client; the engine runs its calls in an executor."""

    CATALOG_TTL = timedelta(hours=1)
    _RETRYABLE = frozenset({408, 409, 425, 429, 500, 502, 503, 504})

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://openrouter.ai/api/v1",
        *,
        referer: Optional[str] = None,
        title: Optional[str] = None,
        timeout: float = 60.0,
        max_retries: int = 3,
        model_cache_path: Optional[Path] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        if not api_key:
            raise AuthenticationError("OpenRouter API key is required")

        self.max_retries = max(0, max_retries)
        self._cache_path = model_cache_path
        self._catalog: Dict[str, Any] = {}
        self._catalog_fetched_at: Optional[datetime] = None
        if self._cache_path is not None:
            self._restore_catalog()

        headers = {"Authorization": f"Bearer {api_key}"}
        if referer:
            headers["HTTP-Referer"] = referer
        if title:
            headers["X-Title"] = title
        self._http = httpx.Client(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._http.close()

    def generate(
        self,
        model: str,
        messages: Sequence[Mapping[str, Any]],
        *,
        temperature: float = 0.2,
        max_tokens: Optional[int] = None,
    ) -> str:
        """Send a chat completion request and return the reply text."""
        payload: Dict[str, Any] = {
            "model": model,
            "messages": list(messages),
            "temperature": temperature,
        }
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens
        data = self._request("POST", "/chat/completions", json=payload)

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise ClientConfigurationError("OpenRouter chat response has no message content") from exc
        if not isinstance(content, str):
            raise ClientConfigurationError("OpenRouter chat response content is not text")
        return content

    # ---- Model catalog --------------------------------------------------
    def has_fresh_catalog(self) -> bool:
        if not self._catalog or self._catalog_fetched_at is None:
            return False
        return datetime.now(timezone.utc) - self._catalog_fetched_at < self.CATALOG_TTL

    def model_catalog(self) -> Mapping[str, Any]:
        """Models keyed by id; fetched again once the cached copy is stale."""
        if self.has_fresh_catalog():
            return self._catalog

        models = self._request("GET", "/models").get("data")
        if not isinstance(models, list):
            raise ClientConfigurationError("OpenRouter models endpoint returned unexpected payload")
        self._catalog = _index_models(models)
        self._catalog_fetched_at = datetime.now(timezone.utc)
        self._save_catalog(models)
        return self._catalog

    def _restore_catalog(self) -> None:
        try:
            payload = json.loads(self._cache_path.read_text(encoding="utf-8"))
            fetched_at = datetime.fromisoformat(payload["timestamp"])
            models = payload["data"]
        except (OSError, ValueError, KeyError, TypeError):
            return
        if not isinstance(models, list):
            return
        if fetched_at.tzinfo is None:
            fetched_at = fetched_at.replace(tzinfo=timezone.utc)
        catalog = _index_models(models)
        if catalog:
            self._catalog = catalog
            self._catalog_fetched_at = fetched_at

    def _save_catalog(self, models: List[Any]) -> None:
        if self._cache_path is None:
            return
        payload = {"timestamp": self._catalog_fetched_at.isoformat(), "data": models}
        try:
            self._cache_path.parent.mkdir(parents=True, exist_ok=True)
            self._cache_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        except OSError as exc:
            logger.warning("Could not write model catalog cache %s: %s", self._cache_path, exc)

    # ---- HTTP -----------------------------------------------------------
    def _request(self, method: str, path: str, **kwargs: Any) -> Mapping[str, Any]:
        failure: Optional[Exception] = None
        for attempt in range(self.max_retries + 1):
            last_try = attempt == self.max_retries
            try:
                response = self._http.request(method, path, **kwargs)
            except httpx.HTTPError as exc:
                failure = exc
                if not last_try:
                    time.sleep(_backoff(attempt))
                continue

            status = response.status_code
            if status in (401, 403):
                raise AuthenticationError(f"OpenRouter refused the request ({status})")
            if status in self._RETRYABLE and not last_try:
                time.sleep(_backoff(attempt, response.headers.get("Retry-After")))
                continue
            if status >= 400:
                raise _status_error(status, response)
            return _json_object(response)

        if isinstance(failure, httpx.TimeoutException):
            raise TransientError("OpenRouter request timed out after retries") from failure
        raise TransientError("OpenRouter request failed after retries") from failure


def _index_models(models: List[Any]) -> Dict[str, Any]:
    return {m["id"]: m for m in models if isinstance(m, dict) and m.get("id")}


def _json_object(response: httpx.Response) -> Mapping[str, Any]:
    try:
        data = response.json()
    except ValueError as exc:
        raise ClientConfigurationError("OpenRouter returned a non-JSON response") from exc
    if not isinstance(data, Mapping):
        raise ClientConfigurationError("OpenRouter response was not a JSON object")
    return data


def _status_error(status: int, response: httpx.Response) -> OpenRouterError:
    try:
        body = response.json()
        message = body.get("error", {}).get("message")
    except (ValueError, AttributeError):
        message = response.text
    if status == 429:
        return RateLimitError(message or "OpenRouter rate limit exceeded (429)")
    if status >= 500:
        return TransientError(message or f"OpenRouter server error ({status})")
    return OpenRouterError(message or f"OpenRouter request failed ({status})")


def _backoff(attempt: int, retry_after: Optional[str] = None) -> float:
    delay = min(2 ** attempt, 16) * random.uniform(0.5, 1.5)
    if retry_after:
        try:
            delay += float(retry_after)
        except ValueError:
            pass
    return max(0.5, delay)
