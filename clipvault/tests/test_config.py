import pytest
from pydantic import ValidationError

from clipvault.config.settings import (
    ClipVaultConfig,
    DatabaseConfig,
    EmbeddingConfig,
    FFmpegConfig,
    StorageConfig,
    VideoConfig,
)
from clipvault.db.models import build_clip_model
from clipvault.exceptions import ConfigurationException
from clipvault.providers import LocalStorageProvider, ProviderFactory

DIMENSIONS_UNDER_TEST = 256


def test_defaults(config):
    assert config.port == 3000
    assert config.tmp_dir_prefix == "bucket-"
    assert config.embedding.dimensions == 1536
    assert config.embedding.max_batch == 10
    assert config.video.default_fps == 30
    assert config.video.max_download_bytes == 500 * 1024 * 1024
    assert config.video.download_timeout_ms == 120000
    assert config.storage.upload_timeout_ms == 120000
    assert config.ffmpeg.gpu_preset == "p4"
    assert config.ffmpeg.gpu_bitrate == "5M"
    assert config.ffmpeg.gpu_rc_lookahead == 20
    assert not config.ffmpeg.reencode
    assert config.pipeline.max_concurrent_clips == 0


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("EMBEDDING_DIMENSIONS", "1024")
    monkeypatch.setenv("MAX_EMBEDDINGS_PER_BATCH", "4")
    monkeypatch.setenv("DASHSCOPE_API_KEY", "sk-test")
    monkeypatch.setenv("DEFAULT_FPS", "24")
    monkeypatch.setenv("FFMPEG_GPU_ACCELERATION", "true")

    assert EmbeddingConfig().dimensions == 1024
    assert EmbeddingConfig().max_batch == 4
    assert EmbeddingConfig().api_key == "sk-test"
    assert VideoConfig().default_fps == 24
    assert FFmpegConfig().reencode


def test_invalid_gpu_preset_is_rejected():
    with pytest.raises(ValidationError):
        FFmpegConfig(gpu_preset="p9")


def test_database_url_is_assembled_from_parts():
    url = DatabaseConfig(user="clip", password="secret", host="db", port=6543, name="vault").sqlalchemy_url()
    assert url.drivername == "postgresql+asyncpg"
    assert (url.host, url.port, url.database) == ("db", 6543, "vault")
    assert DatabaseConfig(url="postgresql+asyncpg://x/y").sqlalchemy_url() == "postgresql+asyncpg://x/y"


def test_factory_builds_local_storage(monkeypatch, tmp_path):
    monkeypatch.setenv("STORAGE_BASE_PATH", str(tmp_path / "objects"))
    storage = ProviderFactory.create_storage_provider(config=ClipVaultConfig())
    assert isinstance(storage, LocalStorageProvider)
    assert storage.base_path == (tmp_path / "objects").resolve()


def test_factory_rejects_unknown_providers(config):
    with pytest.raises(ConfigurationException):
        ProviderFactory.create_storage_provider("s3", config=config)
    with pytest.raises(ConfigurationException):
        ProviderFactory.create_embedding_provider("bogus", config=config)
    assert ProviderFactory.get_supported_providers() == {
        "embedding": ["azure", "openai"],
        "storage": ["azure", "local"],
    }


def test_openai_provider_requires_api_key(monkeypatch, config):
    monkeypatch.delenv("EMBEDDING_API_KEY", raising=False)
    monkeypatch.delenv("DASHSCOPE_API_KEY", raising=False)
    with pytest.raises(ConfigurationException):
        ProviderFactory.create_embedding_provider("openai", config=config)


def test_storage_config_aliases(monkeypatch):
    monkeypatch.setenv("UPLOAD_TIMEOUT_MS", "5000")
    assert StorageConfig().upload_timeout_ms == 5000


def test_clip_model_uses_configured_vector_width():
    Clip = build_clip_model(dimensions=DIMENSIONS_UNDER_TEST)
    table = Clip.__table__
    assert table.name == "clip"
    assert table.c.embedding.type.dim == DIMENSIONS_UNDER_TEST
    assert table.c.animation_url.nullable
    assert not table.c.video_url.nullable
    assert table.c.origin_id.index


def test_registered_storage_provider_is_used(monkeypatch, config):
    monkeypatch.setattr(ProviderFactory, "_storage_providers", dict(ProviderFactory._storage_providers))

    class MemoryStorage(LocalStorageProvider):
        pass

    ProviderFactory.register_storage_provider("memory", MemoryStorage)
    assert isinstance(ProviderFactory.create_storage_provider("memory", config=config), MemoryStorage)
