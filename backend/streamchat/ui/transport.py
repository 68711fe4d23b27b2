import json
import logging
import os
from typing import Iterable, Iterator, Optional

import httpx

from streamchat.errors import ChatStreamError
from streamchat.models.chat import Message

logger = logging.getLogger(__name__)

DEFAULT_API = os.getenv("STREAMCHAT_API_URL", "http://localhost:8000/api/chat")
# Connect/write/pool timeouts only; replies stream for as long as the model talks.
DEFAULT_TIMEOUT = httpx.Timeout(float(os.getenv("STREAMCHAT_CLIENT_TIMEOUT", "10")), read=None)

DONE = "[DONE]"


def _decode(data: str) -> dict:
    try:
        event = json.loads(data)
    except ValueError as e:
        logger.warning("stream_event_malformed", extra={"data": data[:200]})
        raise ChatStreamError("The reply stream contained malformed data.") from e
    if not isinstance(event, dict):
        logger.warning("stream_event_malformed", extra={"data": data[:200]})
        raise ChatStreamError("The reply stream contained malformed data.")
    return event


def parse_sse(lines: Iterable[str]) -> Iterator[dict]:
    """
    Decode an SSE body into event dicts, stopping at the ``[DONE]`` marker.
    Raises ChatStreamError if the body ends without it or carries an undecodable event.
    """
    data_lines: list[str] = []
    for line in lines:
        if line.startswith("data:"):
            data_lines.append(line[5:].lstrip())
            continue
        if line.strip() or not data_lines:
            # event:/id:/comment lines; the event type is repeated in the payload
            continue

        data = "\n".join(data_lines)
        data_lines = []
        if data == DONE:
            return
        yield _decode(data)

    if data_lines and "\n".join(data_lines) == DONE:
        return
    raise ChatStreamError("The reply stream ended before it was complete.")


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return f"Chat request failed with HTTP {response.status_code}"
    error = body.get("error") if isinstance(body, dict) else None
    return error or f"Chat request failed with HTTP {response.status_code}"


class ChatTransport:
    """POSTs the message history to the chat endpoint and yields the streamed events."""

    def __init__(self, api: str = DEFAULT_API, client: Optional[httpx.Client] = None):
        self.api = api
        self.client = client or httpx.Client(timeout=DEFAULT_TIMEOUT)

    def stream(self, messages: list[Message]) -> Iterator[dict]:
        payload = {
            "messages": [m.model_dump(mode="json", by_alias=True, exclude_none=True) for m in messages],
        }
        try:
            with self.client.stream("POST", self.api, json=payload) as response:
                if response.status_code >= 400:
                    response.read()
                    message = _error_message(response)
                    logger.warning("chat_request_failed", extra={"status": response.status_code, "error": message})
                    raise ChatStreamError(message)
                yield from parse_sse(response.iter_lines())
        except httpx.HTTPError as e:
            logger.warning("chat_transport_error", extra={"api": self.api, "error": str(e)})
            raise ChatStreamError(f"Could not reach the chat server: {e}") from e

    def close(self) -> None:
        self.client.close()
