"""ModelService: explicitly constructed owner of provider instances.

Created by the app factory and passed by reference; closed with
``shutdown()`` from the app lifespan. There is no module-level singleton
and no signal handler registration here.
"""
from __future__ import annotations

import logging
from pathlib import Path
from threading import RLock
from typing import Callable, Dict, List

from core.events import ModelUnloaded, emit
from core.llm.exceptions import UnknownModelError
from core.llm.llama_cpp_provider import LlamaCppProvider
from core.llm.provider import ModelProvider
from core.registry.loader import load_manifests, verify_model_checksum
from core.registry.manifest import ModelManifest
from core.thinking.rules import RuleStore

logger = logging.getLogger("llm.service")

ProviderFactory = Callable[[ModelManifest, Path], ModelProvider]


def llama_provider_factory(
    temperature: float | None = None,
    max_output_tokens: int | None = None,
    n_gpu_layers: int | str | None = None,
) -> ProviderFactory:
    def _build(manifest: ModelManifest, repo_root: Path) -> ModelProvider:
        return LlamaCppProvider(
            model_path=manifest.resolve_model_path(repo_root),
            model_id=manifest.id,
            context_length=manifest.context_length,
            capabilities=tuple(manifest.capabilities),
            temperature=temperature,
            max_output_tokens=max_output_tokens,
            n_gpu_layers=n_gpu_layers,
        )
    return _build


class ModelService:
    def __init__(
        self,
        repo_root: str | Path = ".",
        registry_subdir: str = "llm/registry",
        provider_factory: ProviderFactory | None = None,
        skip_checksum: bool = True,
    ) -> None:
        self._repo_root = Path(repo_root).resolve()
        self._registry_subdir = registry_subdir
        self._factory = provider_factory or llama_provider_factory()
        self._skip_checksum = skip_checksum
        self._providers: Dict[str, ModelProvider] = {}
        self._lock = RLock()
        self._closed = False

    def manifests(self) -> Dict[str, ModelManifest]:
        return load_manifests(self._repo_root, self._registry_subdir)

    def has_model(self, model_id: str) -> bool:
        with self._lock:
            if model_id in self._providers:
                return True
        return model_id in self.manifests()

    def list_models(self) -> List[dict]:
        out = []
        loaded = set(self._providers)
        for m in self.manifests().values():
            out.append(
                {
                    "id": m.id,
                    "family": m.family,
                    "capabilities": list(m.capabilities),
                    "context_length": m.context_length,
                    "thinking_rules": len(m.thinking_rules),
                    "loaded": m.id in loaded,
                }
            )
        return out

    def register_provider(self, model_id: str, provider: ModelProvider) -> None:
        """Attach a ready provider (embedding apps, tests)."""
        with self._lock:
            self._providers[model_id] = provider

    def get_provider(self, model_id: str) -> ModelProvider:
        with self._lock:
            prov = self._providers.get(model_id)
            if prov is not None:
                return prov
            manifest = self.manifests().get(model_id)
            if manifest is None:
                raise UnknownModelError(f"unknown model: {model_id}")
            verify_model_checksum(
                manifest, self._repo_root, skip=self._skip_checksum
            )
            prov = self._factory(manifest, self._repo_root)
            self._providers[model_id] = prov
            return prov

    def seed_rules(self, store: RuleStore) -> int:
        """Copy manifest ``thinking_rules`` into the runtime rule store."""
        total = 0
        for m in self.manifests().values():
            total += store.seed(
                m.id, (r.model_dump() for r in m.thinking_rules)
            )
        logger.info("seeded %s thinking rules from registry", total)
        return total

    def shutdown(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            providers = list(self._providers.items())
            self._providers.clear()
        for model_id, prov in providers:
            try:
                prov.unload()
            except Exception:  # noqa: BLE001
                logger.exception("unload failed model=%s", model_id)
                continue
            emit(ModelUnloaded(model_id=model_id, reason="shutdown"))


__all__ = ["ModelService", "ProviderFactory", "llama_provider_factory"]
