"""POST /api/chat: one conversational turn (JSON or multipart)."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from chatcore import metrics
from chatcore.errors import ChatError
from chatcore.service import GENERIC_FAILURE, ChatReply, ChatService
from chatdesk.api.transport import normalize_request

logger = logging.getLogger("chatdesk.api.chat")

router = APIRouter()


@router.post("/api/chat")
async def chat(request: Request):  # noqa: D401
    service: ChatService = request.app.state.chat_service
    try:
        turn = await normalize_request(
            request, service.store.limits.max_attachment_size_bytes
        )
        reply = await service.send(turn)
    except ChatError as e:
        reply = ChatReply(message=str(e), error_type=e.error_type)
    except Exception:  # noqa: BLE001
        logger.exception("chat turn failed")
        metrics.inc("chat_turns_total", {"outcome": "internal"})
        return JSONResponse({"message": GENERIC_FAILURE}, status_code=500)
    return JSONResponse(reply.to_dict(), status_code=reply.status_code)
