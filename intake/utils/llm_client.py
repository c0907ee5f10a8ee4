"""
Chat Client - OpenAI-compatible language model service

Responsibilities:
- Send role-tagged chat messages to OpenAI or an Ollama server
- Generate plain text completions
- Generate JSON-object completions with repair
- Enforce a per-call timeout
- Wrap every backend failure in LLMError

Design principles:
- Dependency injection (no module-level client)
- One error type for callers (LLMError), whatever the backend raised
- No prompt logic here (see prompt_builder)
"""

import json
import logging
import time
from typing import Any, Dict, List, Optional

import openai

logger = logging.getLogger(__name__)

Messages = List[Dict[str, str]]

DEFAULT_OLLAMA_BASE_URL = "http://localhost:11434/v1"
DEFAULT_TIMEOUT_SECONDS = 30.0


class LLMError(Exception):
    """Raised when the language model service fails or returns unusable output"""
    pass


def repair_json_text(text: str) -> str:
    """
    Attempt to repair common JSON formatting issues in model output

    Only handles object output (not arrays):
    - strips markdown code fences
    - cuts to the outermost braces
    - balances braces

    Args:
        text: Raw model output

    Returns:
        str: Cleaned JSON string (may still fail to parse)
    """
    text = (text or "").strip()
    if text.startswith("```json"):
        text = text[7:]
    if text.startswith("```"):
        text = text[3:]
    if text.endswith("```"):
        text = text[:-3]
    text = text.strip()

    first_brace = text.find('{')
    last_brace = text.rfind('}')

    if first_brace == -1:
        logger.warning("No braces found in JSON repair")
        return text

    if last_brace == -1 or last_brace < first_brace:
        text = text[first_brace:]
    else:
        text = text[first_brace:last_brace + 1]

    open_count = text.count('{')
    close_count = text.count('}')

    if open_count > close_count:
        missing = open_count - close_count
        text += '}' * missing
        logger.debug(f"Added {missing} closing braces")
    elif close_count > open_count:
        diff = close_count - open_count
        for _ in range(diff):
            last_close = text.rfind('}')
            if last_close != -1:
                text = text[:last_close] + text[last_close + 1:]
        logger.debug(f"Removed {diff} extra closing braces")

    return text


def parse_json_object(text: str) -> Dict[str, Any]:
    """
    Repair and parse model output that should be a JSON object

    Raises:
        LLMError: If the output is not a JSON object
    """
    repaired = repair_json_text(text)
    try:
        parsed = json.loads(repaired)
    except json.JSONDecodeError as e:
        raise LLMError(f"Invalid JSON from model: {e}") from e

    if not isinstance(parsed, dict):
        raise LLMError(f"Expected JSON object, got {type(parsed).__name__}")

    return parsed


class ChatClient:
    """Wrapper for OpenAI-compatible chat completion APIs"""

    def __init__(
        self,
        model: str,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        max_retries: int = 1,
        provider: str = "openai",
        client: Optional[Any] = None
    ) -> None:
        """
        Initialize chat client

        Args:
            model: Model identifier (e.g., 'gpt-4o-mini', 'gpt-oss:20b')
            api_key: API key (Ollama accepts any non-empty value)
            base_url: Custom endpoint (Ollama's /v1 API)
            timeout: Seconds before a call is abandoned
            max_retries: SDK-level retries for transient errors
            provider: Label used in logs and health checks
            client: Pre-built SDK client (tests inject a fake here)

        Raises:
            ValueError: If model is empty or timeout is not positive
        """
        if not model:
            raise ValueError("model must be a non-empty string")
        if timeout <= 0:
            raise ValueError("timeout must be positive")

        self.model = model
        self.provider = provider
        self.timeout = timeout

        if client is None:
            client = openai.OpenAI(
                api_key=api_key,
                base_url=base_url,
                timeout=timeout,
                max_retries=max_retries
            )
        self._client = client

        logger.info(f"Chat client initialized (provider={provider}, model={model}, timeout={timeout}s)")

    @classmethod
    def for_openai(cls, api_key: str, model: str, timeout: float = DEFAULT_TIMEOUT_SECONDS) -> "ChatClient":
        if not api_key:
            raise ValueError("OpenAI API key not provided. Set OPENAI_API_KEY.")
        return cls(model=model, api_key=api_key, timeout=timeout, provider="openai")

    @classmethod
    def for_ollama(
        cls,
        model: str,
        base_url: str = DEFAULT_OLLAMA_BASE_URL,
        api_key: str = "ollama",
        timeout: float = DEFAULT_TIMEOUT_SECONDS
    ) -> "ChatClient":
        return cls(model=model, api_key=api_key, base_url=base_url, timeout=timeout, provider="ollama")

    def is_loaded(self) -> bool:
        return self._client is not None

    def generate(
        self,
        messages: Messages,
        max_tokens: int = 512,
        temperature: float = 0.3,
        json_mode: bool = False
    ) -> str:
        """
        Generate a chat completion

        Args:
            messages: Role-tagged messages ({'role', 'content'})
            max_tokens: Maximum tokens to generate
            temperature: Sampling temperature
            json_mode: Ask the API for a JSON object response

        Returns:
            str: Generated text (stripped)

        Raises:
            LLMError: On timeout, API error, or empty response
        """
        request: Dict[str, Any] = {
            'model': self.model,
            'messages': messages,
            'temperature': temperature,
            'max_tokens': max_tokens,
        }
        if json_mode:
            request['response_format'] = {'type': 'json_object'}

        start_time = time.time()
        try:
            response = self._client.chat.completions.create(**request)
        except openai.APITimeoutError as e:
            logger.error(f"{self.provider} call timed out after {self.timeout}s")
            raise LLMError(f"Language model timed out: {e}") from e
        except openai.OpenAIError as e:
            logger.error(f"{self.provider} call failed: {type(e).__name__} - {e}")
            raise LLMError(f"Language model call failed: {e}") from e

        elapsed_ms = (time.time() - start_time) * 1000
        logger.debug(f"{self.provider} completion took {elapsed_ms:.0f}ms")

        try:
            content = response.choices[0].message.content
        except (AttributeError, IndexError) as e:
            raise LLMError(f"Malformed completion response: {e}") from e

        if not content or not content.strip():
            raise LLMError("Language model returned an empty response")

        return content.strip()

    def generate_json(
        self,
        messages: Messages,
        max_tokens: int = 512,
        temperature: float = 0.0
    ) -> Dict[str, Any]:
        """
        Generate a completion and parse it as a JSON object

        Returns:
            dict: Parsed JSON object

        Raises:
            LLMError: On call failure or unparseable output
        """
        text = self.generate(
            messages=messages,
            max_tokens=max_tokens,
            temperature=temperature,
            json_mode=True
        )
        return parse_json_object(text)

    def check_connection(self) -> bool:
        """Send a tiny prompt; True if the service answered"""
        try:
            reply = self.generate(
                [{'role': 'user', 'content': 'Test connection. Reply with "OK"'}],
                max_tokens=10,
                temperature=0.0
            )
        except LLMError as e:
            logger.warning(f"{self.provider} connection check failed: {e}")
            return False
        return 'OK' in reply.upper()

    def get_model_info(self) -> Dict[str, Any]:
        return {
            'provider': self.provider,
            'model_name': self.model,
            'timeout': self.timeout,
            'is_loaded': self.is_loaded(),
        }
