"""Unit tests for the layer acquisition pipeline."""

import threading

import pytest

from container_diff.core.layers import LayerPipeline
from container_diff.registry.base import RegistryError
from container_diff.utils.errors import (
    ArchiveError,
    DecompressionError,
    LayerFetchError,
    LayerPipelineError,
    MaterializationCancelled,
)


class TestLayerPipeline:
    """Tests for LayerPipeline.run."""

    def test_applies_all_layers(self, fake_source, tar_factory, tmp_path):
        source = fake_source(
            [
                tar_factory([("file", "etc/a", b"a")], compression="gzip"),
                tar_factory([("file", "etc/b", b"b")]),
                tar_factory([("file", "etc/c", b"c")], compression="xz"),
            ]
        )
        layers = LayerPipeline(source, max_workers=2).run(tmp_path / "fs")

        assert len(layers) == 3
        assert sorted(p.name for p in (tmp_path / "fs/etc").iterdir()) == ["a", "b", "c"]

    def test_order_independent_of_completion(self, fake_source, tar_factory, tmp_path):
        # The first layer finishes last but must still be applied first
        source = fake_source(
            [
                tar_factory([("file", "etc/conf", b"from layer 0")]),
                tar_factory([("file", "etc/conf", b"from layer 1")]),
                tar_factory([("file", "etc/.wh.conf", b""), ("file", "etc/other", b"x")]),
            ],
            delays={0: 0.3},
        )
        LayerPipeline(source, max_workers=3).run(tmp_path / "fs")

        assert not (tmp_path / "fs/etc/conf").exists()
        assert (tmp_path / "fs/etc/other").exists()

    def test_last_writer_wins(self, fake_source, tar_factory, tmp_path):
        source = fake_source(
            [
                tar_factory([("file", "etc/conf", b"old")]),
                tar_factory([("file", "etc/conf", b"new")]),
            ],
            delays={0: 0.2},
        )
        LayerPipeline(source, max_workers=2).run(tmp_path / "fs")
        assert (tmp_path / "fs/etc/conf").read_bytes() == b"new"

    def test_no_layers(self, fake_source, tmp_path):
        assert LayerPipeline(fake_source([])).run(tmp_path / "fs") == []
        assert (tmp_path / "fs").is_dir()

    def test_single_failure_reraised(self, fake_source, tar_factory, tmp_path):
        source = fake_source(
            [tar_factory([("file", "a", b"a")]), tar_factory([("file", "b", b"b")])],
            failures={1: RegistryError("connection reset")},
        )
        with pytest.raises(LayerFetchError) as exc_info:
            LayerPipeline(source, name="img").run(tmp_path / "fs")

        assert exc_info.value.digest == source.layer_infos()[1].digest
        assert "connection reset" in exc_info.value.message
        assert exc_info.value.details["source"] == "img"

    def test_all_failures_collected(self, fake_source, tar_factory, tmp_path):
        source = fake_source(
            [tar_factory([("file", n, b"x")]) for n in ("a", "b", "c")],
            failures={0: RegistryError("boom 0"), 2: RegistryError("boom 2")},
            delays={1: 0.1},
        )
        with pytest.raises(LayerPipelineError) as exc_info:
            LayerPipeline(source, max_workers=3).run(tmp_path / "fs")

        assert len(exc_info.value.errors) == 2
        assert sorted(source.started) == [0, 1, 2]
        assert not (tmp_path / "fs/b").exists()

    def test_unexpected_exception_wrapped(self, fake_source, tmp_path):
        source = fake_source([b"irrelevant"], failures={0: ValueError("bad state")})
        with pytest.raises(LayerFetchError) as exc_info:
            LayerPipeline(source).run(tmp_path / "fs")
        assert isinstance(exc_info.value.__cause__, ValueError)

    def test_decompression_failure(self, fake_source, tmp_path):
        source = fake_source([b"definitely not a layer" * 50])
        with pytest.raises(DecompressionError) as exc_info:
            LayerPipeline(source).run(tmp_path / "fs")
        assert exc_info.value.digest == source.layer_infos()[0].digest

    def test_corrupt_deflate_body(self, fake_source, tar_factory, tmp_path):
        blob = tar_factory([("file", "etc/a", b"a" * 5000)], compression="gzip")
        source = fake_source([blob[:10] + b"\x07" + blob[11:]])
        with pytest.raises(DecompressionError) as exc_info:
            LayerPipeline(source).run(tmp_path / "fs")
        assert exc_info.value.digest == source.layer_infos()[0].digest

    def test_manifest_failure(self, broken_manifest_source, tmp_path):
        with pytest.raises(LayerFetchError) as exc_info:
            LayerPipeline(broken_manifest_source).run(tmp_path / "fs")
        assert exc_info.value.digest == "manifest"

    def test_archive_error_carries_digest(self, fake_source, tar_factory, tmp_path):
        source = fake_source([tar_factory([("file", "../escape", b"x")])])
        with pytest.raises(ArchiveError) as exc_info:
            LayerPipeline(source).run(tmp_path / "fs")
        assert exc_info.value.details["digest"] == source.layer_infos()[0].digest

    def test_cancelled_before_start(self, fake_source, tar_factory, tmp_path):
        event = threading.Event()
        event.set()
        source = fake_source([tar_factory([("file", "a", b"a")])])

        with pytest.raises(MaterializationCancelled):
            LayerPipeline(source, cancel_event=event).run(tmp_path / "fs")
        assert list((tmp_path / "fs").iterdir()) == []

    def test_cancelled_while_fetching(self, fake_source, tar_factory, tmp_path):
        event = threading.Event()
        source = fake_source(
            [tar_factory([("file", "a", b"a" * 20000)]), tar_factory([("file", "b", b"b")])],
            delays={0: 0.3},
        )
        timer = threading.Timer(0.05, event.set)
        timer.start()
        try:
            with pytest.raises(MaterializationCancelled) as exc_info:
                LayerPipeline(source, max_workers=2, cancel_event=event).run(tmp_path / "fs")
        finally:
            timer.cancel()

        assert exc_info.value.applied_layers == 0
        assert not (tmp_path / "fs/b").exists()
