from __future__ import annotations

from types import SimpleNamespace

import pytest

from studyplanner.core.errors import MalformedModelOutput, UpstreamGenerationError
from studyplanner.services import llm_service
from studyplanner.services.llm_service import extract_json_object


def test_extract_json_object_tolerates_fences_and_commentary():
    text = 'Sure! Here is your plan:\n```json\n{"schedule": [{"week": 1, "topic": "Optics"}]}\n```\nGood luck.'
    assert extract_json_object(text) == {"schedule": [{"week": 1, "topic": "Optics"}]}


@pytest.mark.parametrize("wrap", ["{}", "```json\n{}\n```", "```\n{}\n```"])
def test_extract_json_object_keeps_fences_inside_string_values(wrap):
    body = '{"notes": "Run ```python print(1)``` in a cell"}'
    assert extract_json_object(wrap.replace("{}", body)) == {"notes": "Run ```python print(1)``` in a cell"}


def test_extract_json_object_takes_outermost_span():
    text = 'prefix {"a": {"b": 1}, "c": [1, 2]} suffix'
    assert extract_json_object(text) == {"a": {"b": 1}, "c": [1, 2]}


def test_extract_json_object_strips_think_block_and_trailing_comma():
    text = '<think>let me think {not json}</think>{"score": 3, "feedback": "ok",}'
    assert extract_json_object(text) == {"score": 3, "feedback": "ok"}


@pytest.mark.parametrize("text", ["", "   ", "no braces at all", '{"unterminated": ', "} backwards {"])
def test_extract_json_object_rejects_missing_or_broken_object(text):
    with pytest.raises(MalformedModelOutput):
        extract_json_object(text)


def test_extract_chat_completion_text_handles_content_parts():
    res = SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=[{"type": "text", "text": '{"x": 1}'}]))]
    )
    assert llm_service._extract_chat_completion_text(res) == '{"x": 1}'


def test_placeholder_keys_are_not_treated_as_configured(monkeypatch):
    monkeypatch.setattr(llm_service.settings, "OPENAI_BASE_URL", "")
    monkeypatch.setattr(llm_service.settings, "OPENAI_API_KEY", "your_openai_api_key")
    assert llm_service.llm_available() is False

    monkeypatch.setattr(llm_service.settings, "OPENAI_API_KEY", "sk-live-1234567890")
    assert llm_service.llm_available() is True


class _FakeCompletions:
    def __init__(self, content):
        self.content = content
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=self.content))])


def _fake_client(content):
    completions = _FakeCompletions(content)
    return SimpleNamespace(chat=SimpleNamespace(completions=completions)), completions


def test_chat_json_requests_json_mode_and_parses(monkeypatch):
    client, completions = _fake_client('```json\n{"ok": true}\n```')
    monkeypatch.setattr(llm_service, "_get_client", lambda: client)
    monkeypatch.setattr(llm_service.settings, "OPENAI_BASE_URL", "")

    out = llm_service.chat_json(messages=[{"role": "user", "content": "hi"}], model="m")

    assert out == {"ok": True}
    assert completions.calls[0]["response_format"] == {"type": "json_object"}
    assert completions.calls[0]["messages"][0]["role"] == "system"


def test_chat_json_empty_response_is_upstream_error(monkeypatch):
    client, _ = _fake_client("")
    monkeypatch.setattr(llm_service, "_get_client", lambda: client)

    with pytest.raises(UpstreamGenerationError):
        llm_service.chat_json(messages=[{"role": "user", "content": "hi"}])


def test_chat_json_unparseable_response_is_malformed(monkeypatch):
    client, _ = _fake_client("I cannot help with that.")
    monkeypatch.setattr(llm_service, "_get_client", lambda: client)

    with pytest.raises(MalformedModelOutput):
        llm_service.chat_json(messages=[{"role": "user", "content": "hi"}])
