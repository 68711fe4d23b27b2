import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, StreamingResponse
from google import genai

from streamchat.errors import ProviderError
from streamchat.models.chat import ChatRequest
from streamchat.services.chat_agent_service import STREAM_HEADERS, stream_chat
from streamchat.services.gemini_service import get_client

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("")
def chat(body: ChatRequest, client: genai.Client = Depends(get_client)):
    """
    Stream the assistant's reply to the given message history as server-sent events.

    A body without ``messages`` is rejected with 400 before the provider is touched.
    If the provider fails before the first chunk, the response is a 502 JSON error
    instead of a stream.
    """
    logger.info("chat_request_received", extra={"messages": len(body.messages)})
    try:
        stream = stream_chat(client, body.messages)
    except ProviderError:
        return JSONResponse(status_code=502, content={"error": "Upstream model provider error"})

    return StreamingResponse(stream, media_type="text/event-stream", headers=STREAM_HEADERS)
