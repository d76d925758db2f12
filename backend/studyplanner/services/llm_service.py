from __future__ import annotations

import base64
import json
import logging
import re
import time
from typing import Any, Dict, List, Optional

from studyplanner.core.config import settings
from studyplanner.core.errors import MalformedModelOutput, UpstreamGenerationError


logger = logging.getLogger(__name__)

_client = None


PLACEHOLDER_KEY_MARKERS = [
    'your_api_key',
    'your api key',
    'your-api-key',
    'replace_me',
    'replace-me',
    'changeme',
    'change_me',
    'sk-xxxxxxxx',
    'your_openai_api_key',
    'openai_api_key',
]


def _looks_like_placeholder_key(k: str | None) -> bool:
    if not k:
        return False
    ks = (k or '').strip().lower()
    if not ks:
        return False
    if any(m in ks for m in PLACEHOLDER_KEY_MARKERS):
        return True
    if not ks.startswith("sk-") and "key" in ks:
        if any(tok in ks for tok in ("your", "demo", "sample", "example", "replace")):
            return True
    if 'xxxx' in ks:
        return True
    return False


def _base_url() -> str:
    return (settings.OPENAI_BASE_URL or "").strip()


def _is_ollama_provider() -> bool:
    """Ollama's OpenAI compatibility is happier without response_format."""

    bu = _base_url().lower()
    return bool(bu and ("ollama" in bu or "11434" in bu))


def llm_available() -> bool:
    """Return True if the backend is configured to call a model.

    - OpenAI API: set OPENAI_API_KEY
    - OpenAI-compatible local servers (Ollama/LM Studio): set OPENAI_BASE_URL (key can be blank)
    """
    if _base_url():
        return True
    key = (settings.OPENAI_API_KEY or "").strip()
    return bool(key) and not _looks_like_placeholder_key(key)


def _get_client():
    global _client
    if _client is not None:
        return _client

    base_url = _base_url() or None
    api_key = (settings.OPENAI_API_KEY or '').strip() or None

    if not base_url and _looks_like_placeholder_key(api_key):
        raise UpstreamGenerationError(
            'API key looks like a placeholder. Replace OPENAI_API_KEY in backend/.env with your real key.'
        )

    # A local OpenAI-compatible server accepts any key.
    if not api_key and base_url:
        api_key = "ollama"

    if not api_key:
        raise UpstreamGenerationError(
            "LLM is not configured. Set OPENAI_API_KEY (OpenAI) or OPENAI_BASE_URL (Ollama/LM Studio) in backend/.env"
        )

    from openai import OpenAI

    # The SDK retries connection errors, 408, 429 and 5xx with exponential backoff.
    _client = OpenAI(
        api_key=api_key,
        base_url=base_url,
        timeout=float(settings.OPENAI_HTTP_TIMEOUT_SEC),
        max_retries=int(settings.OPENAI_MAX_RETRIES),
    )
    return _client


_THINK_RE = re.compile(r"<\s*(think|analysis)\s*>.*?<\s*/\s*\1\s*>", re.IGNORECASE | re.DOTALL)
_FENCE_RE = re.compile(r"\A```(?:json)?\s*|\s*```\Z", re.IGNORECASE)
_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")


def _preprocess_llm_text(s: str) -> str:
    """Strip <think> blocks and the markdown fence some models wrap around JSON."""
    s = (s or "").strip()
    if not s:
        return ""
    s = _THINK_RE.sub("", s).strip()
    if "```" in s:
        s = _FENCE_RE.sub("", s).strip()
    return s


def extract_json_object(text: str) -> Dict[str, Any]:
    """Parse the outermost ``{...}`` span of a model response.

    Tolerates markdown fences and commentary around the object. Raises
    MalformedModelOutput when there is no object or it does not parse.
    """
    s = _preprocess_llm_text(text)
    if not s:
        raise MalformedModelOutput("Model response was empty (expected a JSON object).")

    start = s.find("{")
    end = s.rfind("}")
    if start < 0 or end <= start:
        raise MalformedModelOutput(f"No JSON object found in model response. Head={s[:200]!r}")

    span = s[start:end + 1]
    for candidate in (span, _TRAILING_COMMA_RE.sub(r"\1", span)):
        try:
            obj = json.loads(candidate)
        except ValueError:
            continue
        if isinstance(obj, dict):
            return obj
    raise MalformedModelOutput(f"Could not parse JSON from model response. Head={s[:200]!r}")


def _extract_chat_completion_text(res: Any) -> str:
    """Best-effort extraction of assistant text from a Chat Completions response.

    message.content may be a string or a list of content parts depending on
    the provider; legacy servers put it in choices[0].text.
    """

    def _parts_to_text(parts):
        if isinstance(parts, str):
            return parts
        if not isinstance(parts, list):
            return ""
        out = []
        for p in parts:
            if isinstance(p, str) and p.strip():
                out.append(p.strip())
                continue
            p_text = p.get('text') if isinstance(p, dict) else getattr(p, 'text', None)
            if isinstance(p_text, str) and p_text.strip():
                out.append(p_text.strip())
        return "\n".join(out).strip()

    try:
        choice = res.choices[0]
    except (AttributeError, IndexError, TypeError):
        return ""

    msg = getattr(choice, "message", None)
    if msg is not None:
        content = msg.get('content') if isinstance(msg, dict) else getattr(msg, 'content', None)
        t = _parts_to_text(content)
        if t and t.strip():
            return t.strip()

    t = getattr(choice, 'text', None)
    if isinstance(t, str) and t.strip():
        return t.strip()
    return ""


def image_content_part(data: bytes, mime_type: str) -> Dict[str, Any]:
    """OpenAI vision content part carrying an inline base64 image."""
    b64 = base64.b64encode(data).decode("ascii")
    return {"type": "image_url", "image_url": {"url": f"data:{mime_type};base64,{b64}"}}


def chat_json(
    *,
    messages: List[Dict[str, Any]],
    model: Optional[str] = None,
    temperature: float = 0.3,
    max_tokens: int = 1200,
) -> Dict[str, Any]:
    """Call the model in JSON mode and return the parsed object.

    Raises UpstreamGenerationError when the call fails or comes back empty,
    MalformedModelOutput when the text holds no parseable JSON object.
    """
    from openai import BadRequestError, OpenAIError

    client = _get_client()
    m = model or settings.OPENAI_CHAT_MODEL

    json_guard = {
        "role": "system",
        "content": (
            "You are a strict JSON generator. "
            "Output exactly ONE valid JSON object and nothing else. "
            "Do NOT include explanations or markdown fences."
        ),
    }
    base_kwargs: Dict[str, Any] = {
        "model": m,
        "messages": [json_guard] + (messages or []),
        "temperature": float(temperature),
        "max_tokens": int(max_tokens),
    }

    t0 = time.time()
    try:
        if _is_ollama_provider():
            res = client.chat.completions.create(**base_kwargs)
        else:
            try:
                res = client.chat.completions.create(**base_kwargs, response_format={"type": "json_object"})
            except BadRequestError:
                # Some OpenAI-compatible gateways reject response_format.
                res = client.chat.completions.create(**base_kwargs)
    except OpenAIError as e:
        logger.warning("model call failed model=%s: %s", m, e)
        raise UpstreamGenerationError(f"Model call failed: {type(e).__name__}: {str(e)[:200]}") from e

    content = _extract_chat_completion_text(res)
    logger.info("model=%s latency=%.2fs chars=%d", m, time.time() - t0, len(content))
    logger.debug("model output head: %r", content[:300])
    if not content:
        raise UpstreamGenerationError("Model returned an empty response.")
    return extract_json_object(content)
