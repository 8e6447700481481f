"""
OpenRouter provider for commit-message generation.

This provider uses the OpenRouter API to reach many hosted models through
one endpoint. Requires OPENROUTER_API_KEY environment variable to be set.
"""

from .chat_completions import ChatCompletionsProvider


class OpenRouterProvider(ChatCompletionsProvider):
    """
    Provider that executes prompts through the OpenRouter API.

    OpenRouter provides unified access to multiple LLM providers through
    a single API endpoint.
    """

    API_URL = "https://openrouter.ai/api/v1/chat/completions"
    API_KEY_ENV = "OPENROUTER_API_KEY"
    MODEL_ENV = "OPENROUTER_MODEL"
    DEFAULT_MODEL = "openai/gpt-4o-mini"
    DEFAULT_TIMEOUT = 60.0

    REFERER = "https://github.com/aicommit"
    TITLE = "aicommit"

    def name(self) -> str:
        return "openrouter"

    def _headers(self) -> dict:
        headers = super()._headers()
        headers["HTTP-Referer"] = self.REFERER
        headers["X-Title"] = self.TITLE
        return headers
