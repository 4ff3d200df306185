from __future__ import annotations

try:
    from openai import OpenAI as _OpenAI
except ImportError:
    _OpenAI = None  # type: ignore[assignment,misc]

from pkgdir_core.providers.base import BaseProvider


class OpenAIProvider(BaseProvider):
    NAME = "openai"
    DEFAULT_MODEL = "gpt-4o"
    TEMPERATURE = 0.2

    def __init__(self, api_key: str, model: str | None = None, timeout: float | None = None):
        super().__init__(model)
        if _OpenAI is None:
            raise ImportError(
                "The 'openai' package is required for this provider. " "Install it with: pip install openai"
            )
        options = {"timeout": timeout} if timeout is not None else {}
        self.client = _OpenAI(api_key=api_key, **options)

    def _call_api(self, prompt: str) -> str | None:
        response = self.client.chat.completions.create(
            model=self.model,
            messages=[{"role": "user", "content": prompt}],
            temperature=self.TEMPERATURE,
            max_tokens=self.MAX_TOKENS,
        )
        if not response.choices:
            return None
        return response.choices[0].message.content
