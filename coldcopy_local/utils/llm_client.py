"""
Completion client for OpenAI-compatible chat APIs (DeepSeek by default)
"""

import openai

from typing import Optional
import logging
import time


SYSTEM_PROMPT = "You are an expert B2B cold email copywriter."
DEFAULT_TEMPERATURE = 0.7
MAX_ATTEMPTS = 4
BACKOFF_BASE_SECONDS = 0.5
BACKOFF_CAP_SECONDS = 8.0


class CompletionError(RuntimeError):
    """Raised when a completion cannot be obtained."""


def normalize_llm_base_url(url: Optional[str]) -> Optional[str]:
    """
    Turn a full chat-completions endpoint into the client base URL.

    ``https://api.deepseek.com/chat/completions`` becomes
    ``https://api.deepseek.com``. Blank values return None.
    """
    value = str(url or '').strip()
    if not value:
        return None
    value = value.rstrip('/')
    for suffix in ('/chat/completions', '/completions'):
        if value.endswith(suffix):
            value = value[: -len(suffix)]
            break
    return value.rstrip('/') or None


def backoff_seconds(attempt: int) -> float:
    """Delay after a failed 1-based attempt: 0.5s doubling, capped at 8s."""
    return min(BACKOFF_CAP_SECONDS, BACKOFF_BASE_SECONDS * 2 ** (attempt - 1))


def _looks_like_html(content: str) -> bool:
    head = content.strip()[:15].lower()
    return head.startswith('<!doctype html') or head.startswith('<html')


class CompletionClient:
    """
    Sends prompts to the chat completions endpoint and returns the raw text.
    Retries rate limits, server errors and timeouts with exponential backoff.
    """

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "deepseek-chat",
        base_url: Optional[str] = None,
        timeout_ms: int = 45000,
        max_attempts: int = MAX_ATTEMPTS,
    ):
        """
        Initialize completion client.

        Args:
            api_key: API key for the endpoint
            model: Model to use for completions
            base_url: Base URL or full chat-completions URL of the endpoint
            timeout_ms: Per-call timeout in milliseconds
            max_attempts: Total attempts per prompt
        """
        self.api_key = api_key
        self.model = model
        self.timeout_ms = timeout_ms
        self.max_attempts = max(1, int(max_attempts))
        self.logger = logging.getLogger("coldcopy.llm_client")

        self.client = None
        if api_key:
            # Retries are handled here so the backoff schedule stays ours.
            self.client = openai.OpenAI(
                api_key=api_key,
                base_url=normalize_llm_base_url(base_url),
                timeout=timeout_ms / 1000.0,
                max_retries=0,
            )

    def complete(self, prompt: str, request_id: Optional[str] = None) -> str:
        """
        Get the completion text for a prompt.

        Args:
            prompt: User prompt
            request_id: Correlation id sent as ``X-Request-Id``

        Returns:
            Raw completion text

        Raises:
            CompletionError: If the key is missing, retries are exhausted or
                the endpoint fails with a non-transient error
        """
        if self.client is None:
            raise CompletionError(
                "LLM API key is not configured (set DEEPSEEK_API_KEY, DEEPSEEK_KEY or DEEPSEEK_TOKEN)"
            )

        params = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            "temperature": DEFAULT_TEMPERATURE,
        }
        if request_id:
            params["extra_headers"] = {"X-Request-Id": request_id}

        response = self._make_api_call_with_retry(params, request_id)

        content = ''
        if getattr(response, 'choices', None):
            content = response.choices[0].message.content or ''
        if _looks_like_html(content):
            raise CompletionError(
                "Received HTML instead of a completion from the LLM endpoint. "
                "Check the API URL and key."
            )

        usage = getattr(response, 'usage', None)
        if usage is not None:
            self.logger.debug(f"Token usage [{request_id}] - Prompt: {usage.prompt_tokens}, "
                              f"Completion: {usage.completion_tokens}, "
                              f"Total: {usage.total_tokens}")

        return str(content)

    def _make_api_call_with_retry(self, params: dict, request_id: Optional[str]):
        """
        Make the API call, retrying transient failures.

        Raises:
            CompletionError: When all attempts fail or the error is not transient
        """
        last_error: Optional[Exception] = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                return self.client.chat.completions.create(**params)

            except openai.RateLimitError as e:
                last_error = e
                reason = "rate limited (429)"
            except openai.APITimeoutError as e:
                last_error = e
                reason = "timed out"
            except openai.APIStatusError as e:
                if e.status_code < 500:
                    self.logger.error(f"LLM API error {e.status_code} [{request_id}]: {str(e)}")
                    raise CompletionError(f"LLM API error {e.status_code}: {e.message}") from e
                last_error = e
                reason = f"server error {e.status_code}"
            except openai.APIConnectionError as e:
                self.logger.error(f"LLM connection failed [{request_id}]: {str(e)}")
                raise CompletionError(f"LLM connection failed: {str(e)}") from e

            if attempt < self.max_attempts:
                wait = backoff_seconds(attempt)
                self.logger.warning(
                    f"LLM call {reason} [{request_id}], retrying in {wait:.1f}s "
                    f"(attempt {attempt}/{self.max_attempts})"
                )
                time.sleep(wait)

        self.logger.error(f"LLM call failed after {self.max_attempts} attempts [{request_id}]: {str(last_error)}")
        raise CompletionError(
            f"LLM call failed after {self.max_attempts} attempts: {str(last_error)}"
        ) from last_error
