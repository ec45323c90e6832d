"""Shared API fixtures: app built around an in-test fake provider."""
from __future__ import annotations

import time

import pytest
from fastapi.testclient import TestClient

from core.llm.provider import ModelInfo, ModelProvider
from core.llm.service import ModelService
from bookbag.api import abort_registry


class FakeProvider(ModelProvider):
    """Yields scripted chunks; optional hook runs before each chunk."""

    def __init__(self, chunks, delay_s=0.005, before_chunk=None, fail_at=None):
        self.chunks = list(chunks)
        self.delay_s = delay_s
        self.before_chunk = before_chunk
        self.fail_at = fail_at
        self.prompts = []

    def load(self):  # noqa: D401
        return None

    def stream(self, prompt, **kwargs):  # noqa: D401
        self.prompts.append((prompt, kwargs))
        for i, piece in enumerate(self.chunks):
            if self.fail_at is not None and i == self.fail_at:
                raise RuntimeError("backend crashed")
            if self.before_chunk is not None:
                self.before_chunk(i)
            time.sleep(self.delay_s)
            yield piece

    def info(self):  # noqa: D401
        return ModelInfo(id="fake", capabilities=("chat",), context_length=2048)


@pytest.fixture()
def make_client(tmp_path):
    """Factory: make_client(provider) -> (TestClient, app)."""
    from bookbag.api.app import create_app

    abort_registry.reset_for_tests()

    def _make(provider: ModelProvider | None = None, model_id: str = "fake"):
        svc = ModelService(repo_root=tmp_path)
        if provider is not None:
            svc.register_provider(model_id, provider)
        app = create_app(model_service=svc)
        return TestClient(app), app

    return _make


@pytest.fixture()
def fake_provider():
    """The FakeProvider class (fixtures keep conftest out of imports)."""
    return FakeProvider
