import sys
import textwrap
import types
from pathlib import Path

import pytest

from core import metrics
from core.llm import LlamaCppProvider, ModelLoadError, UnknownModelError
from core.llm.provider import ModelInfo, ModelProvider
from core.llm.service import ModelService
from core.thinking import RuleStore


class _FakeLlama:
    instances: list = []

    def __init__(self, model_path, n_ctx, verbose=False, n_gpu_layers=None):
        if n_gpu_layers not in (None, 0):
            raise RuntimeError("no gpu")
        self.n_gpu_layers = n_gpu_layers
        _FakeLlama.instances.append(self)

    def __call__(self, prompt, stream=False, max_tokens=16, temperature=0.7):
        for piece in ["<think>", "hm", "</think>", "hi"][:max_tokens]:
            yield {"choices": [{"text": piece}]}


@pytest.fixture()
def fake_llama_cpp(monkeypatch):
    mod = types.ModuleType("llama_cpp")
    mod.Llama = _FakeLlama
    monkeypatch.setitem(sys.modules, "llama_cpp", mod)
    _FakeLlama.instances = []
    return mod


def test_provider_streams_text_and_falls_back_to_cpu(tmp_path, fake_llama_cpp):
    prov = LlamaCppProvider(
        tmp_path / "m.gguf", "m", 2048, n_gpu_layers="auto",
        max_output_tokens=3,
    )
    assert list(prov.stream("hello")) == ["<think>", "hm", "</think>"]
    assert _FakeLlama.instances[-1].n_gpu_layers == 0
    counters = metrics.snapshot()["counters"]
    assert counters["llama_gpu_fallback_total{model=m}"] == 1
    assert counters["events_modelloaded{model=m}"] == 1
    assert prov.info().metadata["loaded"] is True
    prov.unload()
    assert prov.info().metadata["loaded"] is False


def test_provider_load_failure_raises(tmp_path, monkeypatch):
    mod = types.ModuleType("llama_cpp")

    def _boom(**kwargs):  # noqa: D401
        raise FileNotFoundError("model not found")

    mod.Llama = _boom
    monkeypatch.setitem(sys.modules, "llama_cpp", mod)
    prov = LlamaCppProvider(tmp_path / "missing.gguf", "m", 2048)
    with pytest.raises(ModelLoadError):
        prov.load()


class _StubProvider(ModelProvider):
    def __init__(self, model_id):
        self.model_id = model_id
        self.unloaded = False

    def load(self):  # noqa: D401
        return None

    def stream(self, prompt, **kwargs):  # noqa: D401
        yield "ok"

    def info(self):  # noqa: D401
        return ModelInfo(id=self.model_id, capabilities=("chat",),
                         context_length=1024)

    def unload(self):  # noqa: D401
        self.unloaded = True


def _registry(tmp_path: Path) -> None:
    reg = tmp_path / "llm" / "registry"
    reg.mkdir(parents=True)
    (reg / "thinker.yaml").write_text(
        textwrap.dedent(
            """
            id: thinker
            family: qwen3
            path: models/thinker.gguf
            context_length: 4096
            thinking_rules:
              - start_word: "<think>"
                end_word: "</think>"
            """
        ),
        encoding="utf-8",
    )


def test_service_builds_providers_lazily_and_once(tmp_path):
    _registry(tmp_path)
    built = []

    def _factory(manifest, root):
        built.append(manifest.id)
        return _StubProvider(manifest.id)

    svc = ModelService(repo_root=tmp_path, provider_factory=_factory)
    assert built == []
    assert svc.list_models()[0]["loaded"] is False
    p1 = svc.get_provider("thinker")
    p2 = svc.get_provider("thinker")
    assert p1 is p2 and built == ["thinker"]
    assert svc.list_models()[0]["loaded"] is True
    with pytest.raises(UnknownModelError):
        svc.get_provider("nope")


def test_service_seeds_rules_and_shuts_down(tmp_path):
    _registry(tmp_path)
    svc = ModelService(
        repo_root=tmp_path, provider_factory=lambda m, r: _StubProvider(m.id)
    )
    store = RuleStore()
    assert svc.seed_rules(store) == 1
    assert store.list("thinker")[0].start_word == "<think>"
    prov = svc.get_provider("thinker")
    extra = _StubProvider("extra")
    svc.register_provider("extra", extra)
    assert svc.has_model("extra")
    svc.shutdown()
    svc.shutdown()
    assert prov.unloaded and extra.unloaded
    counters = metrics.snapshot()["counters"]
    assert counters["events_modelunloaded{model=thinker}"] == 1
