"""
Chatbot service module

Natural-language donor search and compatibility answers.
"""

from bloodlink.services.chatbot.config import (
    get_openai_api_key,
    get_openai_client,
    get_default_model,
    is_ai_enabled,
)

from bloodlink.services.chatbot.service import (
    QueryType,
    ChatbotQuery,
    ChatbotReply,
    extract_query,
    call_llm_extract,
    understand,
    search_donors,
    answer,
)

__all__ = [
    "get_openai_api_key",
    "get_openai_client",
    "get_default_model",
    "is_ai_enabled",
    "QueryType",
    "ChatbotQuery",
    "ChatbotReply",
    "extract_query",
    "call_llm_extract",
    "understand",
    "search_donors",
    "answer",
]
