"""LLM providers abstraction layer exports.

No built-in dummy provider. Tests implement their own lightweight fake
provider where needed.
"""

from .provider import ModelProvider, ModelInfo  # noqa: F401
from .exceptions import (  # noqa: F401
    ModelError,
    ModelGenerationError,
    ModelLoadError,
    UnknownModelError,
)
from .llama_cpp_provider import LlamaCppProvider  # noqa: F401

__all__ = [
    "ModelProvider",
    "ModelInfo",
    "ModelError",
    "ModelLoadError",
    "ModelGenerationError",
    "UnknownModelError",
    "LlamaCppProvider",
]
