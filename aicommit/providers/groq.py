"""
Groq provider for commit-message generation.

Requires GROQ_API_KEY environment variable to be set.
"""

from .chat_completions import ChatCompletionsProvider


class GroqProvider(ChatCompletionsProvider):
    """Fast hosted inference through Groq's OpenAI-compatible API."""

    API_URL = "https://api.groq.com/openai/v1/chat/completions"
    API_KEY_ENV = "GROQ_API_KEY"
    MODEL_ENV = "GROQ_MODEL"
    DEFAULT_MODEL = "llama-3.1-8b-instant"
    DEFAULT_TIMEOUT = 30.0

    def name(self) -> str:
        return "groq"
