"""Registry loader: reads all YAML manifests."""
from __future__ import annotations

import hashlib
import logging
import threading
from pathlib import Path
from typing import Dict

import yaml
from yaml import YAMLError

from core.llm import ModelLoadError
from .manifest import ModelManifest

logger = logging.getLogger("core.registry")

_registry_lock = threading.Lock()
_manifest_cache: Dict[Path, Dict[str, ModelManifest]] = {}


def _iter_manifest_files(registry_dir: Path):
    for pattern in ("*.yaml", "*.yml"):
        for path in sorted(registry_dir.glob(pattern)):
            if path.is_file():
                yield path


def _load_manifest_file(path: Path) -> ModelManifest:
    """Load a single manifest file.

    Tab characters (common accidental edit) are retried as two spaces so
    one bad manifest does not take down the whole registry.
    """
    raw_text = path.read_text(encoding="utf-8")
    try:
        data = yaml.safe_load(raw_text) or {}
    except YAMLError as e:
        if "\t" not in raw_text:
            raise ModelLoadError(f"Invalid manifest {path.name}: {e}") from e
        logger.warning("re-parsing manifest tabs->spaces: %s", path.name)
        try:
            data = yaml.safe_load(raw_text.replace("\t", "  ")) or {}
        except YAMLError as e2:
            raise ModelLoadError(
                f"Invalid manifest {path.name}: {e2}"
            ) from e2
    try:
        return ModelManifest(**data)
    except Exception as e:  # noqa: BLE001
        raise ModelLoadError(f"Invalid manifest {path.name}: {e}") from e


def load_manifests(
    repo_root: str | Path,
    registry_subdir: str = "llm/registry",
) -> Dict[str, ModelManifest]:
    """Load all manifests into an index keyed by id (thread-safe cache)."""
    root = Path(repo_root).resolve()
    registry_dir = root / registry_subdir
    with _registry_lock:
        if registry_dir in _manifest_cache:
            return _manifest_cache[registry_dir]
        if not registry_dir.exists():
            _manifest_cache[registry_dir] = {}
            return _manifest_cache[registry_dir]
        index: Dict[str, ModelManifest] = {}
        for mf in _iter_manifest_files(registry_dir):
            manifest = _load_manifest_file(mf)
            if manifest.id in index:
                raise ModelLoadError(
                    f"Duplicate model id in registry: {manifest.id}"
                )
            index[manifest.id] = manifest
        _manifest_cache[registry_dir] = index
        return index


def compute_sha256(path: Path, chunk_size: int = 1024 * 1024) -> str:
    h = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(chunk_size), b""):
            h.update(chunk)
    return h.hexdigest()


def verify_model_checksum(
    manifest: ModelManifest,
    repo_root: str | Path,
    skip: bool = False,
) -> bool:
    if skip or not manifest.checksum_sha256:
        return True
    file_path = manifest.resolve_model_path(Path(repo_root))
    if not file_path.exists():
        raise ModelLoadError(f"Model file not found: {file_path}")
    actual = compute_sha256(file_path)
    if actual.lower() != manifest.checksum_sha256.lower():
        raise ModelLoadError(
            "Checksum mismatch for {id}: expected {exp} got {act}".format(
                id=manifest.id, exp=manifest.checksum_sha256, act=actual
            )
        )
    return True


def clear_manifest_cache() -> None:
    """Clear cached manifest indexes (tests / reload)."""
    with _registry_lock:
        _manifest_cache.clear()
