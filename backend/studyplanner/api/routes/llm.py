from __future__ import annotations

import openai
from fastapi import APIRouter

from studyplanner.core.config import settings
from studyplanner.services.llm_service import _looks_like_placeholder_key, llm_available


router = APIRouter(tags=["llm"])


@router.get("/llm/status")
def llm_status():
    """Which model/provider the gateway would call. Never exposes the API key."""

    base_url = (settings.OPENAI_BASE_URL or "").strip()

    provider = "openai"
    if base_url:
        if "ollama" in base_url.lower() or "11434" in base_url:
            provider = "ollama"
        else:
            provider = "openai_compatible"

    return {
        "llm_available": bool(llm_available()),
        "model": settings.OPENAI_CHAT_MODEL,
        "vision_model": settings.OPENAI_VISION_MODEL or settings.OPENAI_CHAT_MODEL,
        "provider": provider,
        "sdk_version": getattr(openai, "__version__", None),
        "base_url": base_url or None,
        "api_key_set": bool((settings.OPENAI_API_KEY or "").strip()),
        "api_key_is_placeholder": bool(_looks_like_placeholder_key(settings.OPENAI_API_KEY)),
        "max_retries": int(settings.OPENAI_MAX_RETRIES),
    }
