"""Ollama client wrapper for the upgrade analysis.

All model interaction goes through this module. It handles:
- Client configuration (base URL, model, decoding parameters)
- One non-streaming generate request per analysis
- Envelope decoding and error classification

Design notes:
- Exactly one attempt per call; the caller's deadline bounds it
- The returned text is the raw model reply; validating it against the
  output contract is ``validation.py``'s job
"""

from __future__ import annotations

import time

import httpx
from pydantic import BaseModel, ValidationError

from diffbreak.errors import InternalError, TimedOutError
from diffbreak.logging_config import get_logger
from diffbreak.metrics import NullObserver, RequestObserver

logger = get_logger(__name__)


class LLMConfig(BaseModel):
    """Configuration for the model client.

    Attributes:
        base_url: Ollama server root (e.g., "http://localhost:11434")
        model: Ollama model identifier
        temperature: Sampling temperature (low keeps JSON well-formed)
        num_predict: Maximum tokens in the response
    """

    base_url: str = "http://localhost:11434"
    model: str = "qwen2.5:7b"
    temperature: float = 0.2
    num_predict: int = 1200


class GenerateOptions(BaseModel):
    temperature: float
    num_predict: int


class GenerateRequest(BaseModel):
    model: str
    prompt: str
    stream: bool = False
    options: GenerateOptions


class GenerateResponse(BaseModel):
    response: str = ""
    done: bool = False
    error: str = ""


class OllamaClient:
    """Async wrapper around Ollama's ``/api/generate`` endpoint.

    Usage:
        client = OllamaClient(config=LLMConfig(base_url="http://ollama:11434"))
        raw = await client.generate(prompt)
    """

    def __init__(
        self,
        config: LLMConfig | None = None,
        observer: RequestObserver | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config or LLMConfig()
        self._observer = observer or NullObserver()
        self._transport = transport

    @property
    def generate_url(self) -> str:
        return self.config.base_url.rstrip("/") + "/api/generate"

    async def generate(self, prompt: str) -> str:
        """Send ``prompt`` and return the trimmed model reply.

        Raises:
            TimedOutError: If the request cannot complete in time
            InternalError: On a transport failure, a non-2xx status, an
                undecodable envelope, or an error reported by Ollama
        """
        payload = GenerateRequest(
            model=self.config.model,
            prompt=prompt,
            options=GenerateOptions(
                temperature=self.config.temperature,
                num_predict=self.config.num_predict,
            ),
        )

        start = time.perf_counter()
        # Stays "timeout" only if the awaiting task is cancelled by its deadline.
        status = "timeout"
        try:
            async with httpx.AsyncClient(timeout=None, transport=self._transport) as http:
                resp = await http.post(self.generate_url, json=payload.model_dump())

            if not resp.is_success:
                status = str(resp.status_code)
                raise InternalError(f"ollama request failed: status {resp.status_code}")

            try:
                parsed = GenerateResponse.model_validate_json(resp.content)
            except ValidationError as exc:
                status = "decode_error"
                raise InternalError("ollama returned an undecodable envelope") from exc

            if parsed.error:
                status = "error"
                raise InternalError(f"ollama error: {parsed.error}")

            status = "ok"
            return parsed.response.strip()
        except httpx.TimeoutException as exc:
            raise TimedOutError() from exc
        except httpx.HTTPError as exc:
            status = "error"
            raise InternalError(f"ollama request failed: {exc}") from exc
        finally:
            self._observer.observe_ollama(status, time.perf_counter() - start)
            logger.debug("ollama_request_finished", status=status)
