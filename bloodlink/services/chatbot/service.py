"""
Chatbot donor search

Answers two kinds of free-text questions:
- donor searches ("I need A+ in Kolkata")
- compatibility questions ("What blood types can O+ donate to?")

Parsing is rule based. When the rules cannot read a message and an OpenAI key
is configured, the LLM is asked to extract the same fields. All compatibility
answers come from bloodlink.services.compatibility.
"""
import json
import logging
import re
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from bloodlink.database.schemas import DonorSummary
from bloodlink.services.chatbot.config import get_default_model, get_openai_client, is_ai_enabled
from bloodlink.services.compatibility import (
    BloodType,
    can_donate_to,
    compatible_donor_types,
    parse_blood_type,
    sorted_types,
)
from bloodlink.services.matching import Matcher

logger = logging.getLogger(__name__)

MAX_CHATBOT_DONORS = 10

BLOOD_TYPE_PATTERN = re.compile(
    r"(?<![A-Za-z])(AB|A|B|O)\s*(\+|-|positive\b|negative\b|pos\b|neg\b)",
    re.IGNORECASE,
)
CITY_PATTERN = re.compile(r"\bin\s+([A-Za-z][A-Za-z\s]*)", re.IGNORECASE)

DONATE_KEYWORDS = [
    "donate blood to",
    "can i donate",
    "give blood to",
    "donate to which groups",
    "groups can i donate to",
    "donate to",
]
RECEIVE_KEYWORDS = [
    "receive blood from",
    "can i receive",
    "get blood from",
    "receive from which groups",
    "groups can donate to me",
    "donate blood to me",
    "donate to me",
    "receive from",
]

OUT_OF_SCOPE_REPLY = (
    "I'm sorry, that query is outside my current scope. Please ask about finding blood donors "
    "(e.g., 'I need A+ in Kolkata') or blood compatibility (e.g., 'What blood types can O+ donate to?' "
    "or 'Which groups can donate blood to me if I am A-?')."
)
MEDICAL_DISCLAIMER = "Always consult with a medical professional for personalized advice."


class QueryType(str, Enum):
    DONOR_SEARCH = "DONOR_SEARCH"
    CAN_DONATE = "CAN_DONATE"
    CAN_RECEIVE = "CAN_RECEIVE"
    INVALID = "INVALID"


class ChatbotQuery(BaseModel):
    query_type: QueryType
    blood_type: Optional[BloodType] = None
    city: Optional[str]             = None


class ChatbotReply(BaseModel):
    reply: str                           = Field(..., description="Markdown answer")
    query_type: QueryType
    blood_type: Optional[BloodType]      = None
    city: Optional[str]                  = None
    donors: List[DonorSummary]           = Field(default_factory=list)
    exact_match_found: bool              = False
    can_donate_to: List[BloodType]       = Field(default_factory=list)
    can_receive_from: List[BloodType]    = Field(default_factory=list)


def _find_blood_type(text: str) -> Optional[BloodType]:
    for match in BLOOD_TYPE_PATTERN.finditer(text):
        group, sign = match.group(1), match.group(2).lower()
        sign = "+" if sign.startswith(("+", "pos")) else "-"
        parsed = parse_blood_type(group + sign)
        if parsed is not None:
            return parsed
    return None


def _find_city(text: str) -> Optional[str]:
    match = CITY_PATTERN.search(text)
    if not match:
        return None
    words = match.group(1).split()
    if not words:
        return None
    return " ".join(word.capitalize() for word in words)


def extract_query(text: str) -> ChatbotQuery:
    """
    Rule-based parse of a chatbot message
    """
    text = text or ""
    lowered = text.lower()
    blood_type = _find_blood_type(text)

    is_donate = any(keyword in lowered for keyword in DONATE_KEYWORDS)
    is_receive = any(keyword in lowered for keyword in RECEIVE_KEYWORDS)

    if is_donate or is_receive:
        if blood_type is None:
            return ChatbotQuery(query_type=QueryType.INVALID)
        # "donate to me" phrasing is a receive question, so receive wins
        query_type = QueryType.CAN_RECEIVE if is_receive else QueryType.CAN_DONATE
        return ChatbotQuery(query_type=query_type, blood_type=blood_type)

    city = _find_city(text)
    if blood_type is None:
        return ChatbotQuery(query_type=QueryType.INVALID, city=city)
    return ChatbotQuery(query_type=QueryType.DONOR_SEARCH, blood_type=blood_type, city=city)


def build_extraction_prompt() -> str:
    return (
        "You read messages sent to a blood donation assistant and extract structured fields. "
        "Reply with a single JSON object with keys: "
        '"query_type" (one of "DONOR_SEARCH", "CAN_DONATE", "CAN_RECEIVE", "INVALID"), '
        '"blood_type" (one of "A+", "A-", "B+", "B-", "AB+", "AB-", "O+", "O-" or null), '
        '"city" (string or null). '
        "DONOR_SEARCH means the user is looking for donors of a blood type. "
        "CAN_DONATE / CAN_RECEIVE mean the user asks which groups a blood type can give to / receive from. "
        "Use INVALID for anything else. Output JSON only."
    )


def call_llm_extract(text: str, model: Optional[str] = None) -> ChatbotQuery:
    """
    Ask the LLM to extract query fields

    Raises:
        ValueError: If the API key is missing or the model output is unusable
    """
    client = get_openai_client()
    response = client.responses.create(
        model=model or get_default_model(),
        input=[
            {"role": "system", "content": build_extraction_prompt()},
            {"role": "user", "content": text},
        ],
        max_output_tokens=100,
    )
    raw = response.output_text.strip()
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValueError(f"LLM returned non-JSON output: {raw[:80]}") from e

    try:
        query_type = QueryType(str(data.get("query_type", "INVALID")).upper())
    except ValueError:
        query_type = QueryType.INVALID
    blood_type = parse_blood_type(data.get("blood_type"))
    city = data.get("city") or None
    if query_type != QueryType.INVALID and blood_type is None:
        query_type = QueryType.INVALID
    if query_type != QueryType.DONOR_SEARCH:
        city = None
    return ChatbotQuery(query_type=query_type, blood_type=blood_type, city=city)


def understand(text: str) -> ChatbotQuery:
    """
    Rules first, LLM fallback when configured
    """
    query = extract_query(text)
    if query.query_type != QueryType.INVALID or not is_ai_enabled():
        return query
    try:
        return call_llm_extract(text)
    except Exception as e:
        # The LLM is a best-effort fallback; the rule-based answer still stands
        logger.warning("[Chatbot] LLM extraction failed: %s", e)
        return query


def _format_types(types) -> str:
    return ", ".join(t.value for t in sorted_types(types))


def search_donors(matcher: Matcher, blood_type: BloodType, city: Optional[str]):
    """
    Usable donors compatible with blood_type, preferring the requested city

    Returns:
        (donors, exact_match_found)
    """
    donors = matcher.find_for_blood_type(blood_type, limit=0)
    # Same-type donors first, then the rest of the compatible pool
    donors.sort(key=lambda d: d.blood_type != blood_type)
    exact_match_found = False
    if city:
        wanted = city.lower()
        in_city = [d for d in donors if d.city and wanted in d.city.lower()]
        if in_city:
            donors = in_city
            exact_match_found = True
    return [DonorSummary.from_identity(d) for d in donors[:MAX_CHATBOT_DONORS]], exact_match_found


def _donor_search_reply(blood_type: BloodType, city: Optional[str], donors: List[DonorSummary], exact_match_found: bool) -> str:
    where = f" in **{city}**" if city else ""
    if not donors:
        return (
            f"I'm sorry, I couldn't find any available donors compatible with **{blood_type.value}**{where} "
            "at the moment.\n\n**Suggestions:**\n• Try searching without a city name\n"
            "• Post a blood request so compatible donors can respond"
        )

    donor_list = "\n\n".join(
        f"• **{d.name}** ({d.blood_type.value})\n  📍 {d.city or 'Unknown City'}\n"
        f"  📞 {d.phone or 'Not provided'}\n  📧 {d.email or 'Not provided'}"
        for d in donors
    )
    if city and not exact_match_found:
        reply = (
            f"I couldn't find compatible donors for **{blood_type.value}** in **{city}**. "
            f"However, here are available donors from other locations:\n\n"
        )
    elif exact_match_found:
        reply = f"Great! I found **{len(donors)}** available donor(s) for **{blood_type.value}**{where}:\n\n"
    else:
        reply = f"Here are **{len(donors)}** available donor(s) for **{blood_type.value}**:\n\n"

    reply += (
        f"**Available Donors:**\n{donor_list}\n\n**Next Steps:**\n"
        "• Contact donors directly via phone or email\n"
        "• Be respectful and explain your urgent need clearly\n"
        "• Verify their current availability before visiting"
    )
    return reply


def answer(text: str, matcher: Matcher) -> ChatbotReply:
    """
    Build the chatbot reply for a message
    """
    query = understand(text)
    logger.info("[Chatbot] query_type=%s blood_type=%s city=%s", query.query_type.value,
                query.blood_type.value if query.blood_type else None, query.city)

    if query.query_type == QueryType.INVALID:
        return ChatbotReply(reply=OUT_OF_SCOPE_REPLY, query_type=QueryType.INVALID)

    blood_type = query.blood_type
    donate_to = sorted_types(can_donate_to(blood_type))
    receive_from = sorted_types(compatible_donor_types(blood_type))

    if query.query_type == QueryType.CAN_DONATE:
        reply = (
            "Based on universal blood compatibility rules:\n\n"
            f"If you have **{blood_type.value}** blood, you can **donate blood to** the following blood types: "
            f"**{_format_types(donate_to)}**.\n\n{MEDICAL_DISCLAIMER}"
        )
        return ChatbotReply(reply=reply, query_type=query.query_type, blood_type=blood_type,
                            can_donate_to=donate_to, can_receive_from=receive_from)

    if query.query_type == QueryType.CAN_RECEIVE:
        reply = (
            "Based on universal blood compatibility rules:\n\n"
            f"If you have **{blood_type.value}** blood, you can **receive blood from** the following blood types: "
            f"**{_format_types(receive_from)}**.\n\n{MEDICAL_DISCLAIMER}"
        )
        return ChatbotReply(reply=reply, query_type=query.query_type, blood_type=blood_type,
                            can_donate_to=donate_to, can_receive_from=receive_from)

    donors, exact_match_found = search_donors(matcher, blood_type, query.city)
    return ChatbotReply(
        reply=_donor_search_reply(blood_type, query.city, donors, exact_match_found),
        query_type=query.query_type,
        blood_type=blood_type,
        city=query.city,
        donors=donors,
        exact_match_found=exact_match_found,
        can_donate_to=donate_to,
        can_receive_from=receive_from,
    )
