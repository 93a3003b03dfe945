"""
OpenRouter Client Module

Sends clipboard text to the OpenRouter chat-completion endpoint and returns
the rewritten text. One request per hotkey trigger, no retries.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from .. import APP_NAME

logger = logging.getLogger(__name__)

OPENROUTER_API_URL = "https://openrouter.ai/api/v1/chat/completions"
OPENROUTER_REFERER = "https://github.com/paleblueapps/cliptomic"

DEFAULT_MAX_TOKENS = 1000
DEFAULT_TEMPERATURE = 0.7

# Longest slice of an error body kept in exception messages
_ERROR_BODY_LIMIT = 200


def _unique(models: List[str]) -> List[str]:
    """Drop repeated identifiers while keeping the first occurrence order."""
    return list(dict.fromkeys(models))


# Free models available on OpenRouter
FREE_MODELS = _unique([
    "mistralai/mistral-small-3.2-24b-instruct:free",
    "mistralai/mistral-7b-instruct:free",
    "openai/gpt-oss-120b:free",
    "openai/gpt-oss-120b:free",
    "meta-llama/llama-3.3-8b-instruct:free",
    "meta-llama/llama-4-maverick:free",
    "meta-llama/llama-3.3-70b-instruct:free",
    "qwen/qwen3-30b-a3b:free",
    "google/gemma-3-27b-it:free",
    "google/gemini-2.0-flash-exp:free",
    "microsoft/phi-3-mini-128k-instruct:free",
    "huggingfaceh4/zephyr-7b-beta:free",
    "openchat/openchat-7b:free",
    "gryphe/mythomist-7b:free",
    "undi95/toppy-m-7b:free",
])

# Premium models
PAID_MODELS = _unique([
    "anthropic/claude-sonnet-4",
    "google/gemini-2.5-flash",
    "google/gemini-2.5-pro",
    "openai/gpt-4.1-mini",
    "openai/gpt-5",
    "openai/gpt-4.1-mini",
    "deepseek/deepseek-chat-v3.1",
])

ALL_PREDEFINED_MODELS = _unique(FREE_MODELS + PAID_MODELS)


class RewriteError(Exception):
    """Base exception for failed rewrite requests."""
    pass


class NetworkError(RewriteError):
    """Raised when the request never produced an HTTP response."""
    pass


class AuthenticationError(RewriteError):
    """Raised when the API rejects the key (401/403)."""
    pass


class HttpStatusError(RewriteError):
    """Raised on any other non-2xx status."""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code


class EmptyResponseError(RewriteError):
    """Raised when the response holds no usable message."""
    pass


def build_messages(text: str, system_prompt: str, user_prompt_template: str) -> List[Dict[str, str]]:
    """
    Build the system/user message pair for a rewrite request.

    The ``{text}`` placeholder in the template is replaced literally with
    the clipboard text.
    """
    if "{text}" not in user_prompt_template:
        logger.warning("User prompt template has no {text} placeholder; clipboard text is not sent")

    return [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": user_prompt_template.replace("{text}", text)},
    ]


def extract_content(payload: Any) -> str:
    """
    Pull the first choice's message content out of a chat-completion body.

    Raises:
        EmptyResponseError: If no choice or no content is present
    """
    if not isinstance(payload, dict):
        raise EmptyResponseError("No response from OpenRouter")

    choices = payload.get("choices") or []
    if not choices:
        raise EmptyResponseError("No response from OpenRouter")

    first = choices[0] if isinstance(choices[0], dict) else {}
    message = first.get("message") or {}
    content = message.get("content")
    if not isinstance(content, str):
        raise EmptyResponseError("No response from OpenRouter")

    return content.strip()


class OpenRouterClient:
    """
    Chat-completion client for text rewriting.

    Holds one ``httpx.AsyncClient`` for the lifetime of the application; it is
    created on first use and released by ``close()``.
    """

    def __init__(
        self,
        api_url: str = OPENROUTER_API_URL,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        temperature: float = DEFAULT_TEMPERATURE,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Initialize OpenRouterClient.

        Args:
            api_url: Chat-completion endpoint
            max_tokens: ``max_tokens`` sent with every request
            temperature: ``temperature`` sent with every request
            transport: Optional httpx transport (used by tests)
        """
        self.api_url = api_url
        self.max_tokens = max_tokens
        self.temperature = temperature
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._closed = False

        logger.info("OpenRouterClient initialized with endpoint: %s", api_url)

    async def initialize(self) -> bool:
        """Create the shared HTTP client."""
        self._get_client()
        return True

    def _get_client(self) -> httpx.AsyncClient:
        if self._closed:
            raise NetworkError("HTTP client already closed")

        if self._client is None:
            self._client = httpx.AsyncClient(transport=self._transport)
            logger.debug("HTTP client created")

        return self._client

    def _build_headers(self, api_key: str) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {api_key}",
            "HTTP-Referer": OPENROUTER_REFERER,
            "X-Title": APP_NAME,
        }

    async def rewrite(
        self,
        text: str,
        api_key: str,
        model: str,
        system_prompt: str,
        user_prompt_template: str
    ) -> str:
        """
        Rewrite text with the given model.

        Args:
            text: Original clipboard text
            api_key: OpenRouter API key
            model: Model identifier
            system_prompt: System role content
            user_prompt_template: User role template containing ``{text}``

        Returns:
            The rewritten text with surrounding whitespace removed

        Raises:
            NetworkError: On transport failure
            AuthenticationError: On 401/403
            HttpStatusError: On any other non-2xx status
            EmptyResponseError: When the body has no usable content
        """
        body = {
            "model": model,
            "messages": build_messages(text, system_prompt, user_prompt_template),
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
        }

        logger.info("Sending rewrite request: model=%s, chars=%d", model, len(text))

        try:
            response = await self._get_client().post(
                self.api_url,
                json=body,
                headers=self._build_headers(api_key),
            )
        except httpx.TimeoutException as e:
            raise NetworkError(f"Request to OpenRouter timed out: {e}") from e
        except httpx.RequestError as e:
            raise NetworkError(f"Request to OpenRouter failed: {e}") from e

        if response.status_code in (401, 403):
            raise AuthenticationError(
                f"Authentication failed ({response.status_code}): check your API key"
            )

        if not response.is_success:
            error_text = response.text[:_ERROR_BODY_LIMIT]
            raise HttpStatusError(
                response.status_code,
                f"OpenRouter API error ({response.status_code}): {error_text}"
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise EmptyResponseError(f"Failed to parse OpenRouter response: {e}") from e

        result = extract_content(payload)
        logger.info("Rewrite response received: chars=%d", len(result))
        return result

    async def close(self) -> None:
        """Close the HTTP client. Safe to call more than once."""
        if self._closed:
            return

        self._closed = True
        client, self._client = self._client, None

        if client is not None:
            try:
                await client.aclose()
                logger.debug("HTTP client closed")
            except Exception as e:
                logger.error("Error closing HTTP client: %s", e)

    @property
    def is_closed(self) -> bool:
        return self._closed
