from __future__ import annotations

from prwarden_core.errors import TransientIntegrationError
from prwarden_core.providers.base import BaseReviewer


class AnthropicReviewer(BaseReviewer):
    MODEL = "claude-sonnet-4-20250514"
    # Low temperature: the output has to be machine-parsed JSON and the same
    # diff should yield the same issue ids run after run.
    TEMPERATURE = 0.2

    def __init__(self, api_key: str, **kwargs):
        super().__init__(**kwargs)
        try:
            import anthropic
        except ImportError:
            raise ImportError(
                "The 'anthropic' package is required for this provider. "
                "Install it with: pip install 'prwarden[anthropic]'"
            )
        self._sdk = anthropic
        self.client = anthropic.Anthropic(api_key=api_key)

    def _call_api(self, system_prompt: str, user_prompt: str) -> str:
        # Imported inside the method because the anthropic package is optional;
        # __init__ already validated it is installed before we reach here.
        from anthropic.types import TextBlock

        sdk = self._sdk
        try:
            response = self.client.messages.create(
                model=self.MODEL,
                system=system_prompt,
                messages=[{"role": "user", "content": user_prompt}],
                temperature=self.TEMPERATURE,
                max_tokens=self.MAX_TOKENS,
            )
        except (sdk.APIConnectionError, sdk.RateLimitError, sdk.InternalServerError) as e:
            raise TransientIntegrationError(f"Anthropic API unavailable: {e}") from e
        text_blocks = [block.text for block in response.content if isinstance(block, TextBlock)]
        return "".join(text_blocks).strip()
