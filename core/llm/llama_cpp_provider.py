"""llama.cpp streaming provider.

Summary:
* Lazy, idempotent load guarded by a lock; ``llama_cpp`` imported on
  load so the package imports without the optional dependency.
* GPU offload failure retries once on CPU (``n_gpu_layers=0``).
* Filters sampling kwargs against the llama callable signature.
* Emits ModelLoaded / ModelLoadFailed; stream text is yielded raw, the
  thinking segmenter does all classification downstream.
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from pathlib import Path
from threading import Lock
from time import perf_counter
from typing import Any, Dict, Iterable

from .exceptions import ModelGenerationError, ModelLoadError
from .provider import ModelInfo, ModelProvider
from core import metrics
from core.errors import map_exception, validate_error_type
from core.events import emit, ModelLoaded, ModelLoadFailed

logger = logging.getLogger("llm.llama_cpp")


@dataclass(slots=True)
class _State:
    llama: Any | None = None
    loaded: bool = False
    supported_args: set[str] | None = None
    effective_n_gpu_layers: int | None = None


class LlamaCppProvider(ModelProvider):
    def __init__(
        self,
        model_path: str | Path,
        model_id: str,
        context_length: int,
        capabilities: tuple[str, ...] = ("chat",),
        temperature: float | None = None,
        max_output_tokens: int | None = None,
        n_gpu_layers: int | str | None = None,
    ) -> None:
        self._model_path = str(model_path)
        self._model_id = model_id
        self._context_length = context_length
        self._capabilities = tuple(capabilities)
        self._base_sampling: Dict[str, Any] = {
            "temperature": temperature,
            "max_tokens": max_output_tokens,
        }
        self._n_gpu_layers = n_gpu_layers
        self._state = _State()
        self._lock = Lock()

    # helpers --------------------------------------------------------------
    @staticmethod
    def _resolve_n_gpu_layers(raw: Any) -> int | None:
        if raw is None:
            return None
        if isinstance(raw, str):
            lowered = raw.strip().lower()
            if lowered == "auto":
                return -1
            if not lowered:
                return None
            try:
                return int(lowered)
            except ValueError:
                return None
        try:
            return int(raw)
        except (TypeError, ValueError):
            return None

    def _build_llama_kwargs(self) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {
            "model_path": self._model_path,
            "n_ctx": self._context_length,
            "verbose": False,
        }
        n_gpu_layers = self._resolve_n_gpu_layers(self._n_gpu_layers)
        if n_gpu_layers is not None:
            kwargs["n_gpu_layers"] = n_gpu_layers
        return kwargs

    # load -----------------------------------------------------------------
    def load(self) -> None:  # noqa: D401
        if self._state.loaded:
            return
        with self._lock:
            if self._state.loaded:
                return
            start = perf_counter()
            try:
                from llama_cpp import Llama  # type: ignore

                llama_kwargs = self._build_llama_kwargs()
                try:
                    llama_obj = Llama(**llama_kwargs)
                except Exception:  # noqa: BLE001
                    if llama_kwargs.get("n_gpu_layers") in (None, 0):
                        raise
                    llama_kwargs["n_gpu_layers"] = 0
                    llama_obj = Llama(**llama_kwargs)
                    metrics.inc(
                        "llama_gpu_fallback_total", {"model": self._model_id}
                    )
                self._state.effective_n_gpu_layers = llama_kwargs.get(
                    "n_gpu_layers"
                )
                self._state.llama = llama_obj
                sig = inspect.signature(llama_obj.__call__)
                self._state.supported_args = set(sig.parameters.keys())
                self._state.loaded = True
            except Exception as e:  # noqa: BLE001
                code = validate_error_type(map_exception(e, "model.load"))
                emit(
                    ModelLoadFailed(
                        model_id=self._model_id,
                        error_type=code,
                        message=str(e)[:400],
                    )
                )
                raise ModelLoadError(
                    f"cannot load {self._model_id}: {e}"
                ) from e
            emit(
                ModelLoaded(
                    model_id=self._model_id,
                    load_ms=int((perf_counter() - start) * 1000),
                    backend="llama_cpp",
                )
            )

    def _filter_sampling(self, kwargs: Dict[str, Any]) -> Dict[str, Any]:
        supported = self._state.supported_args or set()
        out: Dict[str, Any] = {}
        for key, val in {**self._base_sampling, **kwargs}.items():
            if val is None:
                continue
            if not supported or key in supported:
                out[key] = val
            else:
                logger.debug("dropping unsupported sampling arg %s", key)
        return out

    # info -----------------------------------------------------------------
    def info(self) -> ModelInfo:  # noqa: D401
        return ModelInfo(
            id=self._model_id,
            capabilities=self._capabilities,
            context_length=self._context_length,
            metadata={
                "backend": "llama_cpp",
                "loaded": self._state.loaded,
                "effective_n_gpu_layers": self._state.effective_n_gpu_layers,
            },
        )

    # generation -----------------------------------------------------------
    def stream(self, prompt: str, **kwargs: Any) -> Iterable[str]:
        self.load()
        llama_obj = self._state.llama
        assert llama_obj is not None
        sampling = self._filter_sampling(kwargs)
        try:
            for token in llama_obj(prompt, stream=True, **sampling):
                if not isinstance(token, dict):
                    continue
                piece = token.get("choices", [{}])[0].get("text", "")
                if piece:
                    yield piece
        except Exception as e:  # noqa: BLE001
            raise ModelGenerationError(str(e)) from e

    # unload --------------------------------------------------------------
    def unload(self) -> None:  # noqa: D401
        with self._lock:
            self._state.llama = None
            self._state.loaded = False
            self._state.supported_args = None
            self._state.effective_n_gpu_layers = None
