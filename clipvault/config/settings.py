from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import AliasChoices, Field, PrivateAttr
from typing import Literal, Optional
from dotenv import load_dotenv, find_dotenv
from sqlalchemy.engine import URL


def _settings_config(env_prefix: str = "") -> SettingsConfigDict:
    return SettingsConfigDict(
        env_prefix=env_prefix,
        env_file=".env",
        env_file_encoding="utf-8",
        validate_assignment=True,
        extra="ignore",
        case_sensitive=False,
        populate_by_name=True,
    )


class DatabaseConfig(BaseSettings):
    """Relational store configuration."""

    url: Optional[str] = Field(default=None, description="Full SQLAlchemy URL; overrides the discrete fields")
    user: str = Field(default="postgres")
    password: str = Field(default="postgres")
    host: str = Field(default="localhost")
    port: int = Field(default=5432, gt=0)
    name: str = Field(default="clipvault")
    ssl: bool = Field(default=False)
    pool_size: int = Field(default=5, gt=0)
    echo: bool = Field(default=False)
    auto_create: bool = Field(default=True, description="Create the vector extension and clip table at startup")

    model_config = _settings_config("DB_")

    def sqlalchemy_url(self):
        if self.url:
            return self.url
        return URL.create(
            drivername="postgresql+asyncpg",
            username=self.user,
            password=self.password,
            host=self.host,
            port=self.port,
            database=self.name,
        )


class EmbeddingConfig(BaseSettings):
    """Embedding provider configuration."""

    provider: str = Field(default="openai")
    base_url: Optional[str] = Field(default=None)
    api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("EMBEDDING_API_KEY", "DASHSCOPE_API_KEY"),
    )
    model: str = Field(default="text-embedding-3-small")
    dimensions: int = Field(default=1536, gt=0)
    max_batch: int = Field(
        default=10,
        gt=0,
        validation_alias=AliasChoices("EMBEDDING_MAX_BATCH", "MAX_EMBEDDINGS_PER_BATCH"),
    )
    # Azure OpenAI only
    endpoint: Optional[str] = Field(default=None)
    deployment_name: Optional[str] = Field(default=None)
    api_version: str = Field(default="2024-08-01-preview")
    use_managed_identity: bool = Field(default=False)
    timeout: int = Field(default=200, gt=0)
    max_retries: int = Field(default=2, ge=0)

    model_config = _settings_config("EMBEDDING_")


class StorageConfig(BaseSettings):
    """Object storage configuration."""

    provider: str = Field(default="local")
    connection_string: Optional[str] = Field(default=None)
    account_url: Optional[str] = Field(default=None)
    container_name: str = Field(default="clips")
    use_managed_identity: bool = Field(default=True)
    base_path: str = Field(default="./local_storage")
    public_base_url: Optional[str] = Field(default=None)
    upload_timeout_ms: int = Field(
        default=120000,
        gt=0,
        validation_alias=AliasChoices("STORAGE_UPLOAD_TIMEOUT_MS", "UPLOAD_TIMEOUT_MS"),
    )

    model_config = _settings_config("STORAGE_")


class VideoConfig(BaseSettings):
    """Source acquisition and request bounds."""

    default_fps: int = Field(
        default=30,
        gt=0,
        le=240,
        validation_alias=AliasChoices("VIDEO_DEFAULT_FPS", "DEFAULT_FPS"),
    )
    max_download_size_mb: int = Field(
        default=500,
        gt=0,
        validation_alias=AliasChoices("VIDEO_MAX_DOWNLOAD_SIZE_MB", "MAX_DOWNLOAD_SIZE_MB"),
    )
    download_timeout_ms: int = Field(
        default=120000,
        gt=0,
        validation_alias=AliasChoices("VIDEO_DOWNLOAD_TIMEOUT_MS", "DOWNLOAD_TIMEOUT_MS"),
    )
    max_upload_size_mb: int = Field(default=500, gt=0)
    max_clips: int = Field(default=100, gt=0)

    model_config = _settings_config("VIDEO_")

    @property
    def max_download_bytes(self) -> int:
        return self.max_download_size_mb * 1024 * 1024

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_size_mb * 1024 * 1024


class FFmpegConfig(BaseSettings):
    """Media tool configuration. Only the transcode path reads the codec knobs."""

    binary: str = Field(default="ffmpeg")
    transcode: bool = Field(default=False)
    video_codec: str = Field(default="libx264")
    audio_codec: str = Field(default="aac")
    preset: str = Field(default="fast")
    crf: int = Field(default=23, ge=0, le=51)
    bitrate: Optional[str] = Field(default=None)
    gpu_acceleration: bool = Field(default=False)
    gpu_encoder: Literal["h264_nvenc", "hevc_nvenc", "av1_nvenc"] = Field(default="h264_nvenc")
    gpu_preset: Literal["p1", "p2", "p3", "p4", "p5", "p6", "p7"] = Field(default="p4")
    gpu_bitrate: str = Field(default="5M")
    gpu_spatial_aq: bool = Field(default=True)
    gpu_temporal_aq: bool = Field(default=True)
    gpu_rc_lookahead: int = Field(default=20, ge=0, le=32)
    stderr_tail_lines: int = Field(default=20, gt=0)

    model_config = _settings_config("FFMPEG_")

    @property
    def reencode(self) -> bool:
        return self.transcode or self.gpu_acceleration


class PipelineConfig(BaseSettings):
    """Fan-out tuning."""

    max_concurrent_clips: int = Field(default=0, ge=0, description="0 means unbounded")

    model_config = _settings_config("PIPELINE_")


class LoggingConfig(BaseSettings):
    """Logging configuration."""

    level: str = Field(default="INFO")
    log_file: Optional[str] = Field(default=None)
    enable_json: bool = Field(default=False)
    enable_file_logging: bool = Field(
        default=False,
        validation_alias=AliasChoices("LOG_ENABLE_FILE"),
    )
    max_file_size: str = Field(default="10 MB")
    retention_days: int = Field(default=7)

    model_config = _settings_config("LOG_")


class ClipVaultConfig(BaseSettings):
    """Main configuration class."""

    app_name: str = Field(default="ClipVault")
    app_version: str = Field(default="1.0.0")
    environment: str = Field(default="development")
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3000, gt=0)
    tmp_dir_prefix: str = Field(default="bucket-")

    model_config = _settings_config()

    _database: Optional[DatabaseConfig] = PrivateAttr(default=None)
    _embedding: Optional[EmbeddingConfig] = PrivateAttr(default=None)
    _storage: Optional[StorageConfig] = PrivateAttr(default=None)
    _video: Optional[VideoConfig] = PrivateAttr(default=None)
    _ffmpeg: Optional[FFmpegConfig] = PrivateAttr(default=None)
    _pipeline: Optional[PipelineConfig] = PrivateAttr(default=None)
    _logging: Optional[LoggingConfig] = PrivateAttr(default=None)

    def __init__(self, **kwargs):
        # Force load environment variables before initializing
        load_dotenv(find_dotenv())
        super().__init__(**kwargs)

    @property
    def database(self) -> DatabaseConfig:
        if self._database is None:
            self._database = DatabaseConfig()
        return self._database

    @property
    def embedding(self) -> EmbeddingConfig:
        if self._embedding is None:
            self._embedding = EmbeddingConfig()
        return self._embedding

    @property
    def storage(self) -> StorageConfig:
        if self._storage is None:
            self._storage = StorageConfig()
        return self._storage

    @property
    def video(self) -> VideoConfig:
        if self._video is None:
            self._video = VideoConfig()
        return self._video

    @property
    def ffmpeg(self) -> FFmpegConfig:
        if self._ffmpeg is None:
            self._ffmpeg = FFmpegConfig()
        return self._ffmpeg

    @property
    def pipeline(self) -> PipelineConfig:
        if self._pipeline is None:
            self._pipeline = PipelineConfig()
        return self._pipeline

    @property
    def logging(self) -> LoggingConfig:
        if self._logging is None:
            self._logging = LoggingConfig()
        return self._logging
