"""Tests for concurrent batch processing, job logging and settings."""

from __future__ import annotations

from loguru import logger

from conftest import decode
from pixel_alchemy import config
from pixel_alchemy.errors import MetadataReadError
from pixel_alchemy.logger import create_logger
from pixel_alchemy.pipeline.request import TransformRequest
from pixel_alchemy.workers.batch_worker import BatchJob, BatchTransformer


def test_batch_isolates_failures(make_image, tmp_path) -> None:
    first = make_image("first.png", size=(30, 20))
    second = make_image("second.png", size=(20, 30))
    dest = tmp_path / "second.jpg"
    jobs = [
        BatchJob(TransformRequest(first, "png", {"rotate": 90}, request_id="first")),
        BatchJob(TransformRequest(b"broken", "png")),
        BatchJob(TransformRequest(second, "jpeg", {"invert": True}), dest=dest),
    ]
    progress = []

    outcomes = BatchTransformer(max_workers=2, levels_mode="matrix").run(
        jobs, on_progress=lambda done, total: progress.append((done, total))
    )

    assert [outcome.job_id for outcome in outcomes] == ["first", "job-1", "job-2"]
    assert outcomes[0].ok
    assert decode(outcomes[0].result.data).size == (20, 30)
    assert not outcomes[1].ok
    assert isinstance(outcomes[1].error, MetadataReadError)
    assert outcomes[2].ok
    assert outcomes[2].result.path == str(dest)
    assert decode(dest.read_bytes()).size == (20, 30)
    assert progress[-1] == (3, 3)
    assert len(progress) == 3


def test_empty_batch() -> None:
    assert BatchTransformer(max_workers=1).run([]) == []


def test_job_logger_prefixes_messages() -> None:
    messages = []
    sink_id = logger.add(messages.append, format="{message}", level="DEBUG")
    try:
        create_logger("job-1").success("done")
        create_logger().debug("plain")
    finally:
        logger.remove(sink_id)

    assert [message.record["message"] for message in messages] == ["[job-1] done", "plain"]
    assert messages[0].record["level"].name == "SUCCESS"


def test_settings_from_environment(monkeypatch) -> None:
    monkeypatch.setenv("PIXEL_ALCHEMY_LEVELS_MODE", "RAW")
    monkeypatch.setenv("PIXEL_ALCHEMY_MAX_WORKERS", "0")
    monkeypatch.setenv("PIXEL_ALCHEMY_LOG_LEVEL", "debug")
    config.get_settings.cache_clear()
    try:
        settings = config.get_settings()
        assert settings.levels_mode == "raw"
        assert settings.max_workers == 1
        assert settings.log_level == "DEBUG"

        monkeypatch.setenv("PIXEL_ALCHEMY_LEVELS_MODE", "curves")
        monkeypatch.setenv("PIXEL_ALCHEMY_MAX_WORKERS", "many")
        config.get_settings.cache_clear()
        settings = config.get_settings()
        assert settings.levels_mode == "matrix"
        assert settings.max_workers == 4
    finally:
        config.get_settings.cache_clear()


def test_canonical_format() -> None:
    assert config.canonical_format("JPG") == "jpeg"
    assert config.canonical_format(" tif ") == "tiff"
    assert config.canonical_format("HEIC") == "heif"
    assert config.canonical_format("") is None
