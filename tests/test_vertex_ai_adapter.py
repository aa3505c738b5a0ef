from __future__ import annotations

from types import SimpleNamespace

import pytest

from site_copilot import vertex_ai_adapter
from site_copilot.errors import GenerationError
from site_copilot.vertex_ai_adapter import VertexAIAdapter, extract_json_object, find_json_span


class FlakyModel:
    """Fails a fixed number of calls before answering."""

    failures = 0

    def __init__(self, model_name: str) -> None:
        self.model_name = model_name
        self.calls = 0

    def generate_content(self, prompt, *, generation_config=None, stream=False):
        self.calls += 1
        if self.calls <= self.failures:
            raise ConnectionError("unavailable")
        if stream:
            return iter([SimpleNamespace(text='{"headline": '), SimpleNamespace(text='"Hi"}')])
        return SimpleNamespace(text='{"ok": true}')


@pytest.fixture
def adapter_factory(monkeypatch):
    monkeypatch.setattr(vertex_ai_adapter.vertexai, "init", lambda **kwargs: None)

    def build(failures: int) -> VertexAIAdapter:
        monkeypatch.setattr(FlakyModel, "failures", failures)
        monkeypatch.setattr(vertex_ai_adapter, "GenerativeModel", FlakyModel)
        return VertexAIAdapter(project_id="demo", backoff_seconds=0)

    return build


def test_json_span_skips_braces_inside_strings():
    text = 'Here you go: {"note": "use {curly} braces", "n": 1} and more {"x": 2}'

    start, end = find_json_span(text)

    assert text[start:end] == '{"note": "use {curly} braces", "n": 1}'
    assert find_json_span("no json here") is None


def test_extract_json_object_errors():
    assert extract_json_object('```json\n{"tool": "none"}\n```') == {"tool": "none"}
    with pytest.raises(ValueError, match="No JSON object found"):
        extract_json_object("plain text")
    with pytest.raises(ValueError, match="Invalid JSON response"):
        extract_json_object("{'single': 'quotes'}")


def test_transport_failures_are_retried(adapter_factory):
    adapter = adapter_factory(failures=2)

    assert adapter.generate_content("prompt") == '{"ok": true}'
    assert adapter.model.calls == 3


def test_generation_error_after_exhausting_attempts(adapter_factory):
    adapter = adapter_factory(failures=3)

    with pytest.raises(GenerationError) as excinfo:
        adapter.generate_content("prompt")

    assert excinfo.value.attempts == 3
    assert isinstance(excinfo.value.__cause__, ConnectionError)


def test_stream_yields_chunks_after_reconnecting(adapter_factory):
    adapter = adapter_factory(failures=1)

    assert "".join(adapter.stream_content("prompt")) == '{"headline": "Hi"}'
