"""Unit tests for call_llm (the model itself is a fake)"""

from __future__ import annotations

from types import SimpleNamespace

import pytest
from google.api_core.exceptions import InvalidArgument, ServiceUnavailable

from rsmnews.config import LLM_TIMEOUT_SECONDS
from rsmnews.llm import retry as retry_module
from rsmnews.observability.telemetry import counter


class FakeModel:
    def __init__(self, errors=()):
        self.errors = list(errors)
        self.calls: list[dict] = []

    def generate_content(self, prompt, **kwargs):
        self.calls.append(kwargs)
        if self.errors:
            raise self.errors.pop(0)
        return SimpleNamespace(text='{"ok": true}')


@pytest.fixture
def model(monkeypatch):
    fake = FakeModel()
    monkeypatch.setattr(retry_module, "get_gemini_model_with_options", lambda system_instruction=None: fake)
    return fake


def test_genai_backend_gets_request_deadline(monkeypatch, model):
    monkeypatch.setattr(retry_module, "get_backend", lambda: "genai")

    text = retry_module.call_llm("hola", counter_prefix="selection", json_output=True)

    assert text == '{"ok": true}'
    (call,) = model.calls
    assert call["request_options"] == {"timeout": LLM_TIMEOUT_SECONDS}
    assert call["generation_config"]["response_mime_type"] == "application/json"
    assert counter("selection.calls", 0) == 1


def test_vertex_backend_call_has_no_request_options(monkeypatch, model):
    monkeypatch.setattr(retry_module, "get_backend", lambda: "vertexai")

    retry_module.call_llm("hola")

    assert "request_options" not in model.calls[0]


def test_service_unavailable_is_retried(monkeypatch, model):
    monkeypatch.setattr(retry_module, "get_backend", lambda: "vertexai")
    monkeypatch.setattr(retry_module.call_llm.retry, "sleep", lambda seconds: None)
    model.errors = [ServiceUnavailable("down")]

    assert retry_module.call_llm("hola", counter_prefix="enrichment") == '{"ok": true}'
    assert len(model.calls) == 2
    assert counter("enrichment.service_unavailable", 0) == 1


def test_other_errors_propagate_without_retry(monkeypatch, model):
    monkeypatch.setattr(retry_module, "get_backend", lambda: "vertexai")
    model.errors = [InvalidArgument("bad prompt")]

    with pytest.raises(InvalidArgument):
        retry_module.call_llm("hola")

    assert len(model.calls) == 1
