"""
Chatbot endpoints

Natural-language donor search and blood compatibility questions.
"""
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from bloodlink.services.chatbot import ChatbotReply, answer, is_ai_enabled
from bloodlink.services.matching import Matcher
from bloodlink.api.utils import get_matcher

router = APIRouter()


class ChatbotQueryRequest(BaseModel):
    """Request model for a chatbot message"""
    message: str = Field(..., min_length=1, max_length=500, description="User's question, e.g. 'I need A+ in Kolkata'")


@router.post("/chatbot", response_model=ChatbotReply)
async def query_chatbot(body: ChatbotQueryRequest, matcher: Matcher = Depends(get_matcher)):
    """
    Answer a donor search or compatibility question
    """
    return answer(body.message, matcher)


@router.get("/chatbot/status")
async def get_chatbot_status():
    """
    Report whether LLM-assisted parsing is configured
    """
    enabled = is_ai_enabled()
    return {
        "enabled": True,
        "llm_fallback": enabled,
        "message": "LLM fallback is configured" if enabled else "Rule-based parsing only. Set OPENAI_API_KEY to enable the LLM fallback.",
    }
