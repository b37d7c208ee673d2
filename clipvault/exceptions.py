from typing import Dict, Optional


class ClipVaultException(Exception):
    """Base exception for the ClipVault service."""

    error_code = "CLIPVAULT_ERROR"

    def __init__(self, message: str, error_code: str = None, details: Dict = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.error_code
        self.details = details or {}


class ProviderException(ClipVaultException):
    """Raised when external provider fails."""

    error_code = "PROVIDER_ERROR"


class ConfigurationException(ClipVaultException):
    """Raised when configuration is invalid."""

    error_code = "CONFIGURATION_ERROR"


class ValidationException(ClipVaultException):
    """Raised when input validation fails."""

    error_code = "VALIDATION_ERROR"


class IngestionException(ClipVaultException):
    """Raised when the source video or animation cannot be acquired."""

    error_code = "INGESTION_ERROR"


class EmbeddingException(ClipVaultException):
    """Raised when descriptions cannot be embedded."""

    error_code = "EMBEDDING_ERROR"


class ProcessingException(ClipVaultException):
    """Raised when a clip cannot be trimmed, sliced or uploaded."""

    error_code = "PROCESSING_ERROR"


class TrimError(ProcessingException):
    """Raised when the media tool fails to cut a clip."""


class AnimationSliceError(ProcessingException):
    """Raised when an animation buffer cannot be sliced to the requested frames."""


class PersistenceException(ClipVaultException):
    """Raised when the relational store rejects a replace or insert."""

    error_code = "PERSISTENCE_ERROR"

    def __init__(self, message: str, phase: Optional[str] = None, error_code: str = None, details: Dict = None):
        details = dict(details or {})
        if phase is not None:
            details["phase"] = phase
        super().__init__(message, error_code=error_code, details=details)

    @property
    def phase(self) -> Optional[str]:
        return self.details.get("phase")
