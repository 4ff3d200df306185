"""Base provider implementing the Template Method pattern.

Every LLM backend answers the same question, "here is a prompt, give me the
text back":
    complete() → _call_api()   ← only this differs per provider
               → normalize to a non-empty string or raise ProviderError

Subclasses implement two things only:
  - __init__: validate and store the SDK client
  - _call_api: make one raw API call and return the text (or None)

Retries are deliberately absent: a failed review is recorded as an error and
re-running it is an explicit admin action.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from pkgdir_core.errors import ProviderError

logger = logging.getLogger(__name__)

# Shared defaults; subclasses may override as class attributes.
_MAX_TOKENS = 2048


class BaseProvider(ABC):
    NAME: str = ""
    DEFAULT_MODEL: str = ""
    TEMPERATURE: float = 0.2
    MAX_TOKENS: int = _MAX_TOKENS

    def __init__(self, model: str | None = None):
        self.model = model or self.DEFAULT_MODEL

    # ------------------------------------------------------------------ #
    # Public interface                                                     #
    # ------------------------------------------------------------------ #

    def complete(self, prompt: str) -> str:
        """Send one prompt and return the model's plain-text answer.

        Raises ProviderError if the call fails or the response carries no text.
        """
        try:
            text = self._call_api(prompt)
        except ProviderError:
            raise
        except Exception as e:
            logger.error("%s API call failed: %s", self.__class__.__name__, e)
            raise ProviderError(f"{self.NAME} request failed: {describe_api_error(e)}") from e

        if not text or not text.strip():
            raise ProviderError(f"{self.NAME} response contained no text content")
        return text.strip()

    # ------------------------------------------------------------------ #
    # Abstract: implement in each provider                                #
    # ------------------------------------------------------------------ #

    @abstractmethod
    def _call_api(self, prompt: str) -> str | None:
        """Make a single API call and return the raw text response.

        Return None (or an empty string) when the response has no text block;
        let SDK exceptions propagate, complete() normalizes them.
        """


def describe_api_error(error: Exception) -> str:
    """Render an SDK exception with its HTTP status when the SDK exposes one.

    anthropic and openai expose ``status_code``; google-genai exposes ``code``
    and ``status``.
    """
    status = getattr(error, "status_code", None) or getattr(error, "code", None)
    status_text = getattr(error, "status", None)
    message = getattr(error, "message", None) or str(error)
    if status is None:
        return message
    if isinstance(status_text, str) and status_text:
        return f"{status} {status_text}: {message}"
    return f"{status}: {message}"
