import os

from dotenv import load_dotenv

from streamchat.errors import ConfigurationError

load_dotenv()

GEMINI_API_KEY: str | None = os.getenv("GEMINI_API_KEY")
GEMINI_MODEL: str = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")

CHAT_TEMPERATURE: float = float(os.getenv("CHAT_TEMPERATURE", "0.3"))
# Provider round-trips per request. With 1, a turn that ends in tool calls is
# continued by the client re-submitting.
CHAT_MAX_STEPS: int = int(os.getenv("CHAT_MAX_STEPS", "1"))

SYSTEM_PROMPT: str = os.getenv(
    "CHAT_SYSTEM_PROMPT",
    "You are a helpful assistant. When the user asks for a square root, "
    "use the squareRoot tool instead of computing it yourself.",
)

CORS_ORIGINS: list[str] = os.getenv("CORS_ORIGINS", "http://localhost:8000").split(",")


def require_api_key() -> str:
    """Return the provider API key, failing fast when it is not configured."""
    api_key = os.getenv("GEMINI_API_KEY") or GEMINI_API_KEY
    if not api_key:
        raise ConfigurationError("GEMINI_API_KEY is not set")
    return api_key
