import time
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from langchain_ollama import ChatOllama
from langchain_core.messages import HumanMessage
import httpx

from episode_digest.core.errors import AnalyzerAuthError

logger = logging.getLogger(__name__)

AUTH_STATUS_CODES = (401, 403)

CredentialRefresh = Callable[[], Awaitable[None]]


def _status_code(exc: Exception) -> Optional[int]:
    """HTTP status carried by an Ollama or httpx error, if any."""
    status = getattr(exc, "status_code", None)
    if isinstance(status, int):
        return status
    response = getattr(exc, "response", None)
    status = getattr(response, "status_code", None)
    return status if isinstance(status, int) else None


class OllamaClient:
    """
    LangChain-based Ollama client with retry logic and proper connection handling.

    Timeouts and connection errors are retried with linear backoff. An
    authentication rejection calls credential_refresh (when given) and raises
    AnalyzerAuthError without retrying; the next call uses whatever the
    callback set up.
    """

    def __init__(
        self,
        base_url: str,
        model: str,
        temperature: float = 0.1,
        max_attempts: int = 4,
        retry_delay: float = 1.0,
        timeout: float = 300.0,
        credential_refresh: Optional[CredentialRefresh] = None,
        api_key: Optional[str] = None,
    ):
        # ChatOllama uses Ollama's native API, not OpenAI-compatible /v1 endpoint
        if base_url.endswith("/v1"):
            base_url = base_url[:-3]
        elif base_url.endswith("/v1/"):
            base_url = base_url[:-4]

        self.base_url = base_url.rstrip('/')
        self.model = model
        self.max_attempts = max(1, max_attempts)
        self.retry_delay = retry_delay
        self.timeout = timeout
        self.credential_refresh = credential_refresh
        self.temperature = temperature
        self.llm = self._build_llm(api_key)

    def _build_llm(self, api_key: Optional[str]) -> ChatOllama:
        client_kwargs: Dict[str, Any] = {}
        if api_key:
            client_kwargs["headers"] = {"Authorization": f"Bearer {api_key}"}
        return ChatOllama(
            base_url=self.base_url,
            model=self.model,
            temperature=self.temperature,
            num_ctx=8192,  # transcript summaries are long
            format="json",
            client_kwargs=client_kwargs,
        )

    def set_api_key(self, api_key: Optional[str]) -> None:
        """Swap the credentials used for subsequent calls."""
        self.llm = self._build_llm(api_key)

    async def _handle_auth_failure(self, exc: Exception) -> None:
        logger.error(f"Ollama rejected credentials ({_status_code(exc)}) for model {self.model}")
        if self.credential_refresh is not None:
            try:
                await self.credential_refresh()
            except Exception as refresh_error:
                logger.error(f"Credential refresh failed: {refresh_error}")
        raise AnalyzerAuthError(f"Authentication failed for {self.base_url}: {exc}") from exc

    async def _invoke_with_retry(self, messages: List[HumanMessage]) -> Any:
        """
        Invoke LLM with retry logic for timeouts and connection failures.
        """
        last_exception: Optional[Exception] = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                response = await asyncio.wait_for(
                    self.llm.ainvoke(messages),
                    timeout=self.timeout,
                )
                return response

            except asyncio.TimeoutError:
                last_exception = TimeoutError(
                    f"Request timed out after {self.timeout}s"
                )
                logger.warning(
                    f"Attempt {attempt}/{self.max_attempts}: Timeout, retrying..."
                )

            except Exception as e:
                if _status_code(e) in AUTH_STATUS_CODES:
                    await self._handle_auth_failure(e)

                last_exception = e
                error_msg = str(e)

                if isinstance(e, httpx.TransportError) or "connect" in error_msg.lower():
                    logger.warning(
                        f"Attempt {attempt}/{self.max_attempts}: Connection error - {error_msg} (base_url={self.base_url}, model={self.model})"
                    )
                else:
                    # For non-connection errors, don't retry
                    raise

            if attempt < self.max_attempts:
                delay = self.retry_delay * attempt
                await asyncio.sleep(delay)

        raise last_exception or ConnectionError("All connection attempts failed")

    async def evaluate(self, prompt: str) -> Dict[str, Any]:
        """
        Evaluate a prompt and return the response with metadata.
        """
        start = time.time()

        response = await self._invoke_with_retry([HumanMessage(content=prompt)])

        latency_ms = int((time.time() - start) * 1000)

        return {
            "raw": response,
            "content": response.content,
            "latency_ms": latency_ms,
        }

    async def health_check(self) -> bool:
        """
        Check if the Ollama server is reachable by calling /api/tags.
        """
        url = f"{self.base_url}/api/tags"
        try:
            async with httpx.AsyncClient(timeout=5.0) as client:
                resp = await client.get(url)
                if resp.status_code == 200:
                    return True
                logger.error(f"Ollama health check failed: {resp.status_code} {resp.text}")
                return False
        except httpx.HTTPError as e:
            logger.error(f"Ollama health check error: {e} (url={url})")
            return False
