import pytest

from clipvault.providers.custom_providers import LocalStorageProvider
from clipvault.utils.error_handler import ProviderException


@pytest.fixture
def local_storage(tmp_path):
    return LocalStorageProvider({"base_path": str(tmp_path / "store")})


@pytest.fixture
def source_file(tmp_path):
    path = tmp_path / "clip.mp4"
    path.write_bytes(b"clip bytes")
    return path


async def test_upload_returns_key_and_file_url(local_storage, source_file):
    stored = await local_storage.upload_file("clips/o1/a.mp4", str(source_file))

    assert stored.key == "clips/o1/a.mp4"
    assert stored.url.startswith("file://")
    assert (local_storage.base_path / "clips/o1/a.mp4").read_bytes() == b"clip bytes"


async def test_public_base_url_is_used_when_configured(tmp_path, source_file):
    storage = LocalStorageProvider({"base_path": str(tmp_path / "store"), "public_base_url": "https://cdn.test/"})
    stored = await storage.upload_file("clips/o1/a.mp4", str(source_file))
    assert stored.url == "https://cdn.test/clips/o1/a.mp4"


async def test_delete_is_idempotent(local_storage, source_file):
    await local_storage.upload_file("clips/o1/a.mp4", str(source_file))
    await local_storage.delete_object("clips/o1/a.mp4")
    await local_storage.delete_object("clips/o1/a.mp4")
    assert not (local_storage.base_path / "clips/o1/a.mp4").exists()


async def test_list_keys_is_paginated(local_storage, source_file):
    local_storage.PAGE_SIZE = 2
    for name in ("a", "b", "c"):
        await local_storage.upload_file(f"clips/o1/{name}.mp4", str(source_file))
    await local_storage.upload_file("clips/o10/x.mp4", str(source_file))

    pages = [page async for page in local_storage.list_keys("clips/o1/")]

    assert pages == [["clips/o1/a.mp4", "clips/o1/b.mp4"], ["clips/o1/c.mp4"]]


async def test_delete_prefix_respects_keep(local_storage, source_file):
    for name in ("old", "new"):
        await local_storage.upload_file(f"animations/o1/{name}.bin", str(source_file))

    deleted = await local_storage.delete_prefix("animations/o1/", keep=["animations/o1/new.bin"])

    assert deleted == ["animations/o1/old.bin"]
    assert [page async for page in local_storage.list_keys("animations/")] == [["animations/o1/new.bin"]]


async def test_keys_cannot_escape_the_storage_root(local_storage):
    with pytest.raises(ProviderException):
        await local_storage.get_object_url("../outside.mp4")
