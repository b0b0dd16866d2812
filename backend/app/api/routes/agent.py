"""
Chat endpoint: the same agent the Telegram bot talks to.
Returns a user-facing string; agent failures never leak raw errors.
"""
import logging

from fastapi import APIRouter, Depends

from app.agent.orchestrator import map_error_to_message
from app.api.deps import get_container
from app.container import Services
from app.schemas.agent import ChatRequest, ChatResponse
from app.services.qr_service import png_data_url

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/chat", response_model=ChatResponse)
async def chat(payload: ChatRequest, services: Services = Depends(get_container)):
    context = {"source": "api", **payload.context}
    try:
        reply = await services.agent.respond(
            payload.message, payload.telegram_user_id, payload.chat_id, context=context
        )
    except Exception as e:
        logger.error(f"[API] chat failed for user {payload.telegram_user_id}: {e}", exc_info=True)
        return ChatResponse(response=map_error_to_message(e))

    return ChatResponse(
        response=reply.text,
        intent=reply.intent.value if reply.intent else None,
        buttons=reply.buttons,
        flow_step=reply.flow_step,
        qr_code=png_data_url(reply.qr_png) if reply.qr_png else None,
    )
