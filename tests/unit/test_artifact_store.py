"""Tests for the content-addressed artifact store."""

from __future__ import annotations

import os
import threading
import time
from pathlib import Path

import pytest

from helmsource.core.artifact_store import ArtifactStorage, GarbageCollectionError, StorageLockError
from helmsource.core.digest import digest_bytes
from helmsource.models.repository import ObjectMeta

META = ObjectMeta(name="podinfo", namespace="flux")


def _write(store: ArtifactStorage, tmp_path: Path, content: bytes, filename: str):
    source = tmp_path / f"src-{filename}"
    source.write_bytes(content)
    artifact = store.new_artifact_for("HelmRepository", META, "rev", filename)
    store.mkdir_all(artifact)
    return store.copy_from_path(artifact, source)


@pytest.fixture
def store(tmp_path: Path) -> ArtifactStorage:
    return ArtifactStorage(tmp_path / "store", "storage.test", retention_ttl=60, retention_records=2)


class TestLayout:
    """Paths and advertised URLs."""

    def test_path_layout(self, store):
        artifact = store.new_artifact_for("HelmRepository", META, "rev", "index-abc.yaml")
        assert artifact.path == "helmrepository/flux/podinfo/index-abc.yaml"
        assert artifact.url == "http://storage.test/helmrepository/flux/podinfo/index-abc.yaml"
        assert artifact.revision == "rev"

    def test_set_hostname(self, store):
        assert store.set_hostname("http://old:8080/a/b/index.yaml") == "http://storage.test/a/b/index.yaml"
        assert store.set_hostname("") == ""

    def test_set_artifact_url_follows_hostname(self, store):
        artifact = store.new_artifact_for("HelmRepository", META, "rev", "f.yaml")
        store.hostname = "other.test"
        assert store.set_artifact_url(artifact).url.startswith("http://other.test/")


class TestWrites:
    """Atomic copy and alias handling."""

    def test_copy_round_trip(self, store, tmp_path):
        stored = _write(store, tmp_path, b"apiVersion: v1\n", "index-1.yaml")
        assert store.artifact_exist(stored)
        assert store.local_path(stored).read_bytes() == b"apiVersion: v1\n"
        assert stored.digest == digest_bytes(b"apiVersion: v1\n")
        assert stored.checksum == stored.digest.split(":", 1)[1]
        assert stored.size == len(b"apiVersion: v1\n")

    def test_no_temporaries_left_behind(self, store, tmp_path):
        stored = _write(store, tmp_path, b"x", "index-1.yaml")
        names = os.listdir(store.local_path(stored).parent)
        assert not [n for n in names if n.startswith(".tmp-")]

    def test_symlink_points_at_artifact(self, store, tmp_path):
        stored = _write(store, tmp_path, b"one", "index-1.yaml")
        url = store.symlink(stored, "index.yaml")
        link = store.local_path(stored).parent / "index.yaml"
        assert url == "http://storage.test/helmrepository/flux/podinfo/index.yaml"
        assert link.is_symlink()
        assert link.read_bytes() == b"one"

        newer = _write(store, tmp_path, b"two", "index-2.yaml")
        store.symlink(newer, "index.yaml")
        assert link.read_bytes() == b"two"

    def test_alias_never_observed_partial(self, store, tmp_path):
        """Readers racing alias swaps see complete old or new content."""
        old_content = b"A" * 100_000
        new_content = b"B" * 100_000
        first = _write(store, tmp_path, old_content, "index-a.yaml")
        second = _write(store, tmp_path, new_content, "index-b.yaml")
        store.symlink(first, "index.yaml")
        link = store.local_path(first).parent / "index.yaml"

        stop = threading.Event()
        seen: list[bytes] = []

        def reader():
            while not stop.is_set():
                seen.append(link.read_bytes())

        thread = threading.Thread(target=reader)
        thread.start()
        for i in range(50):
            store.symlink(second if i % 2 == 0 else first, "index.yaml")
        stop.set()
        thread.join()

        assert seen
        assert all(data in (old_content, new_content) for data in seen)


class TestLocking:
    def test_lock_is_exclusive_and_released(self, tmp_path):
        store = ArtifactStorage(tmp_path / "store", "storage.test", lock_timeout=0.1)
        artifact = store.new_artifact_for("HelmRepository", META, "rev", "f.yaml")
        store.mkdir_all(artifact)

        held = threading.Event()
        release = threading.Event()

        def holder():
            with store.lock(artifact):
                held.set()
                release.wait(5)

        thread = threading.Thread(target=holder)
        thread.start()
        held.wait(5)
        try:
            other = ArtifactStorage(tmp_path / "store", "storage.test", lock_timeout=0.1)
            with pytest.raises(StorageLockError):
                with other.lock(artifact):
                    pass
        finally:
            release.set()
            thread.join()

        with store.lock(artifact):
            pass

    def test_lock_released_on_error(self, store):
        artifact = store.new_artifact_for("HelmRepository", META, "rev", "f.yaml")
        store.mkdir_all(artifact)
        with pytest.raises(RuntimeError):
            with store.lock(artifact):
                raise RuntimeError("boom")
        with store.lock(artifact):
            pass


class TestRetention:
    """Garbage collection and full purge."""

    def test_keeps_current_and_newest(self, store, tmp_path):
        artifacts = []
        for i in range(4):
            artifacts.append(_write(store, tmp_path, f"v{i}".encode(), f"index-{i}.yaml"))
            path = store.local_path(artifacts[-1])
            os.utime(path, (time.time() - (4 - i), time.time() - (4 - i)))

        current = artifacts[-1]
        deleted = store.garbage_collect(current, timeout=5)

        assert sorted(deleted) == sorted(a.path for a in artifacts[:2])
        assert store.artifact_exist(current)
        assert store.artifact_exist(artifacts[2])

    def test_expired_files_removed_but_never_current(self, store, tmp_path):
        old = _write(store, tmp_path, b"old", "index-old.yaml")
        current = _write(store, tmp_path, b"cur", "index-cur.yaml")
        long_ago = time.time() - 3600
        os.utime(store.local_path(old), (long_ago, long_ago))
        os.utime(store.local_path(current), (long_ago, long_ago))

        deleted = store.garbage_collect(current, timeout=5)

        assert deleted == [old.path]
        assert store.artifact_exist(current)

    def test_alias_survives_gc(self, store, tmp_path):
        current = _write(store, tmp_path, b"cur", "index-cur.yaml")
        store.symlink(current, "index.yaml")
        store.garbage_collect(current, timeout=5)
        assert (store.local_path(current).parent / "index.yaml").is_symlink()

    def test_fresh_temporaries_are_kept(self, store, tmp_path):
        current = _write(store, tmp_path, b"cur", "index-cur.yaml")
        in_flight = store.local_path(current).parent / ".tmp-inflight"
        in_flight.write_bytes(b"partial")
        store.garbage_collect(current, timeout=5)
        assert in_flight.exists()
        assert store.stored_files(current) == [current.path]

    def test_remove_all(self, store, tmp_path):
        first = _write(store, tmp_path, b"1", "index-1.yaml")
        second = _write(store, tmp_path, b"2", "index-2.yaml")
        everything = store.new_artifact_for("HelmRepository", META, "", "*")

        assert store.remove_all(everything) is True
        assert not store.artifact_exist(first)
        assert not store.artifact_exist(second)
        assert store.remove_all(everything) is False

    def test_unreadable_directory_is_gc_error(self, store, tmp_path, monkeypatch):
        current = _write(store, tmp_path, b"cur", "index-cur.yaml")
        directory = store.local_path(current).parent
        real_iterdir = Path.iterdir

        def iterdir(self):
            if self == directory:
                raise PermissionError(13, "Permission denied", str(self))
            return real_iterdir(self)

        monkeypatch.setattr(Path, "iterdir", iterdir)
        with pytest.raises(GarbageCollectionError, match="Permission denied"):
            store.garbage_collect(current, timeout=5)
