import logging
from typing import Optional

from fastapi import APIRouter, Request
from pydantic import BaseModel

logger = logging.getLogger(__name__)
router = APIRouter()


class ClientError(BaseModel):
    message: str
    source: str = "window"  # window | stream | request
    stack: Optional[str] = None
    message_id: Optional[str] = None
    user_agent: Optional[str] = None


@router.post("", status_code=204)
def log_client_error(error: ClientError, request: Request):
    """
    Sink for errors seen by the chat page: uncaught script errors, failed
    /api/chat requests and error events received mid-stream.
    """
    logger.error(
        "client_error",
        extra={
            "client_message": error.message,
            "source": error.source,
            "stack": error.stack,
            "message_id": error.message_id,
            "user_agent": error.user_agent,
            "client_ip": request.client.host if request.client else None,
        },
    )
