"""streamchat: a streaming chat app with Gemini tool calling."""

__version__ = "0.1.0"
