from __future__ import annotations

from pkgdir_core.providers.base import BaseProvider


class GeminiProvider(BaseProvider):
    NAME = "gemini"
    DEFAULT_MODEL = "gemini-2.5-flash"
    TEMPERATURE = 0.2

    def __init__(self, api_key: str, model: str | None = None, timeout: float | None = None):
        super().__init__(model)
        try:
            from google import genai
            from google.genai import types
        except ImportError:
            raise ImportError(
                "The 'google-genai' package is required for this provider. " "Install it with: pip install google-genai"
            )
        # HttpOptions.timeout is in milliseconds.
        http_options = types.HttpOptions(timeout=int(timeout * 1000)) if timeout is not None else None
        self.client = genai.Client(api_key=api_key, http_options=http_options)

    def _call_api(self, prompt: str) -> str | None:
        from google.genai import types

        response = self.client.models.generate_content(
            model=self.model,
            contents=prompt,
            config=types.GenerateContentConfig(
                temperature=self.TEMPERATURE,
                max_output_tokens=self.MAX_TOKENS,
            ),
        )
        # response.text is None when every candidate was blocked or empty.
        return response.text
