"""
Chatbot configuration

Handles the optional OpenAI client used to understand free-text donor
searches that the rule-based parser cannot read.
"""
import os
from typing import Optional

from openai import OpenAI


def get_openai_api_key() -> Optional[str]:
    """
    Get OpenAI API key from environment variable

    Returns:
        API key string or None if not set
    """
    return os.getenv("OPENAI_API_KEY")


def get_openai_client() -> OpenAI:
    """
    Get configured OpenAI client

    Raises:
        ValueError: If API key is not configured
    """
    api_key = get_openai_api_key()
    if not api_key:
        raise ValueError(
            "OPENAI_API_KEY environment variable not set. "
            "Set it to let the chatbot understand free-text queries."
        )

    return OpenAI(api_key=api_key)


def get_default_model() -> str:
    return os.getenv("OPENAI_MODEL", "gpt-4o-mini")


def is_ai_enabled() -> bool:
    """
    Check if LLM-assisted parsing is enabled (API key configured)
    """
    return bool(get_openai_api_key())
