from .settings import (
    ClipVaultConfig,
    DatabaseConfig,
    EmbeddingConfig,
    StorageConfig,
    VideoConfig,
    FFmpegConfig,
    PipelineConfig,
    LoggingConfig,
)

__all__ = [
    "ClipVaultConfig",
    "DatabaseConfig",
    "EmbeddingConfig",
    "StorageConfig",
    "VideoConfig",
    "FFmpegConfig",
    "PipelineConfig",
    "LoggingConfig",
]
