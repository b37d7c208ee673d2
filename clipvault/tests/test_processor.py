import asyncio

import pytest

from clipvault.exceptions import EmbeddingException, ProcessingException, TrimError
from clipvault.pipeline.animation import pack_animation
from clipvault.pipeline.models import StagedSources
from clipvault.pipeline.processor import ClipProcessor, UploadLedger
from clipvault.pipeline.workspace import Workspace
from clipvault.utils.validation import UploadPayload

from conftest import DIMENSIONS


def make_payload(ranges, origin_id="origin-1"):
    return UploadPayload(
        origin_id=origin_id,
        clips=[
            {"start_frame": start, "end_frame": end, "description": f"clip {index}"}
            for index, (start, end) in enumerate(ranges)
        ],
    )


def vectors(count):
    return [[float(i)] * DIMENSIONS for i in range(count)]


@pytest.fixture
async def workspace(workspace_root):
    async with Workspace(base_dir=str(workspace_root)) as ws:
        source = ws.path_for("origin.mp4")
        source.write_bytes(b"source video")
        yield ws


async def test_outputs_follow_request_order(storage, trimmer, workspace):
    payload = make_payload([(0, 30), (30, 60), (60, 90)])
    staged = StagedSources(video_path=workspace.path_for("origin.mp4"))
    ledger = UploadLedger()

    artifacts = await ClipProcessor(storage, trimmer).process(workspace, staged, payload, 30, vectors(3), ledger)

    assert [a.start_frame for a in artifacts] == [0, 30, 60]
    assert [a.embedding[0] for a in artifacts] == [0.0, 1.0, 2.0]
    assert sorted(trimmer.calls) == [(0.0, 1.0), (1.0, 2.0), (2.0, 3.0)]
    for artifact in artifacts:
        assert artifact.video_object_key.startswith("clips/origin-1/")
        assert artifact.video_object_key.endswith(".mp4")
        assert artifact.video_url == f"https://cdn.test/{artifact.video_object_key}"
        assert artifact.animation_url is None
    assert sorted(ledger.keys) == sorted(a.video_object_key for a in artifacts)


async def test_local_clip_files_are_removed(storage, trimmer, workspace):
    payload = make_payload([(0, 10), (10, 20)])
    staged = StagedSources(video_path=workspace.path_for("origin.mp4"))

    await ClipProcessor(storage, trimmer).process(workspace, staged, payload, 30, vectors(2), UploadLedger())

    assert [p.name for p in workspace.path.iterdir()] == ["origin.mp4"]


async def test_animation_is_sliced_per_clip(storage, trimmer, workspace):
    frames = [bytes([i]) * 3 for i in range(90)]
    payload = make_payload([(0, 30), (30, 60), (60, 90)])
    staged = StagedSources(video_path=workspace.path_for("origin.mp4"), animation=pack_animation(frames))

    artifacts = await ClipProcessor(storage, trimmer).process(
        workspace, staged, payload, 30, vectors(3), UploadLedger()
    )

    slices = [storage.objects[a.animation_object_key] for a in artifacts]
    assert [len(data) for data in slices] == [30 * 3] * 3
    assert b"".join(slices) == b"".join(frames)
    assert all(a.animation_object_key.startswith("animations/origin-1/") for a in artifacts)


async def test_embedding_count_mismatch_fails_before_any_work(storage, trimmer, workspace):
    payload = make_payload([(0, 10), (10, 20)])
    staged = StagedSources(video_path=workspace.path_for("origin.mp4"))

    with pytest.raises(EmbeddingException):
        await ClipProcessor(storage, trimmer).process(workspace, staged, payload, 30, vectors(1), UploadLedger())
    assert trimmer.calls == []
    assert storage.uploads == []


async def test_sibling_uploads_land_in_ledger_when_one_clip_fails(storage, trimmer, workspace):
    trimmer.fail_starts = {1.0}
    trimmer.error = TrimError("exit code 1", details={"stderr_tail": ["boom"]})
    payload = make_payload([(0, 30), (30, 60), (60, 90)])
    staged = StagedSources(video_path=workspace.path_for("origin.mp4"))
    ledger = UploadLedger()

    with pytest.raises(TrimError):
        await ClipProcessor(storage, trimmer).process(workspace, staged, payload, 30, vectors(3), ledger)

    assert len(trimmer.calls) == 3
    assert len(ledger) == 2
    assert set(ledger.keys) == set(storage.uploads)


async def test_foreign_errors_are_wrapped_with_clip_index(storage, trimmer, workspace):
    trimmer.fail_starts = {1.0}
    payload = make_payload([(0, 30), (30, 60)])
    staged = StagedSources(video_path=workspace.path_for("origin.mp4"))

    with pytest.raises(ProcessingException) as exc_info:
        await ClipProcessor(storage, trimmer).process(workspace, staged, payload, 30, vectors(2), UploadLedger())
    assert exc_info.value.details["clip_index"] == 1


async def test_first_failure_in_clip_order_is_reported(storage, trimmer, workspace):
    trimmer.fail_starts = {0.0, 2.0}
    trimmer.error = TrimError("trim failed")
    payload = make_payload([(0, 30), (30, 60), (60, 90)])
    staged = StagedSources(video_path=workspace.path_for("origin.mp4"))

    with pytest.raises(TrimError):
        await ClipProcessor(storage, trimmer).process(workspace, staged, payload, 30, vectors(3), UploadLedger())


async def test_upload_failure_is_a_processing_error_and_key_is_recorded(storage, trimmer, workspace):
    storage.fail_upload_prefix = "clips/origin-1/"
    payload = make_payload([(0, 30)])
    staged = StagedSources(video_path=workspace.path_for("origin.mp4"))
    ledger = UploadLedger()

    with pytest.raises(ProcessingException) as exc_info:
        await ClipProcessor(storage, trimmer).process(workspace, staged, payload, 30, vectors(1), ledger)

    assert exc_info.value.details["clip_index"] == 0
    assert len(ledger) == 1


async def test_concurrency_limit_is_respected(storage, workspace):
    active = 0
    peak = 0

    class SlowTrimmer:
        async def trim(self, input_path, output_path, start_s, end_s):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            output_path.write_bytes(b"clip")
            active -= 1
            return output_path

    payload = make_payload([(i, i + 1) for i in range(6)])
    staged = StagedSources(video_path=workspace.path_for("origin.mp4"))

    await ClipProcessor(storage, SlowTrimmer(), max_concurrency=2).process(
        workspace, staged, payload, 30, vectors(6), UploadLedger()
    )

    assert peak == 2


def test_ledger_ignores_duplicates():
    ledger = UploadLedger()
    ledger.record("a")
    ledger.record("a")
    ledger.record("b")
    assert ledger.keys == ["a", "b"]
    assert "a" in ledger
