"""LLM related exception hierarchy."""


class ModelError(Exception):
    """Base model exception."""


class ModelLoadError(ModelError):
    """Raised when model cannot be loaded.

    Typical reasons: missing file, checksum mismatch, runtime init failure,
    llama-cpp-python not installed.
    """


class UnknownModelError(ModelError):
    """Raised when a model id has no registry manifest."""


class ModelGenerationError(ModelError):
    """Raised when text generation fails.

    Reasons: runtime error, user cancellation, timeout.
    """
