from __future__ import annotations

from typing import Dict, List

from fastapi import APIRouter, Depends

from farm_dashboard.http_utils import assistant
from farm_dashboard.schemas import ChatRequest
from farm_dashboard.services.assistant import FarmAssistant

router = APIRouter(prefix="/v1/chat")


@router.get("/history")
async def chat_history(bot: FarmAssistant = Depends(assistant)) -> List[dict]:
    return bot.history()


@router.post("")
async def send_message(payload: ChatRequest, bot: FarmAssistant = Depends(assistant)) -> Dict[str, object]:
    return await bot.reply(payload.message)
