# =============================================================================
# practice_core/errors/__init__.py
# Centralized Error Handling for the Practice Compliance app
# =============================================================================

from .exceptions import (
    PracticeError,
    MutationValidationError,
    SyncError,
    LocalStorageError,
    RemoteApplyError,
    ConfigurationError,
)

from .handlers import (
    handle_error,
    error_boundary,
)

__all__ = [
    # Exceptions
    "PracticeError",
    "MutationValidationError",
    "SyncError",
    "LocalStorageError",
    "RemoteApplyError",
    "ConfigurationError",
    # Handlers
    "handle_error",
    "error_boundary",
]
