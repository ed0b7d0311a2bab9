"""Tests for epoch snapshots and the local epoch store."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

import pytest

from lockwarden.engines.drift_comparator import DriftKind, compare_epochs
from lockwarden.engines.graph_builder import build
from lockwarden.engines.trust_classifier import ClassificationConfig, classify_graph
from lockwarden.epoch import Epoch, LocalEpochStore, create_epoch
from lockwarden.exceptions import EpochError, EpochExistsError, EpochNotFoundError

T0 = datetime(2026, 1, 5, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def store(tmp_path):
    return LocalEpochStore(tmp_path / "epochs")


@pytest.fixture
def epoch(serde_ring_lock, serde_ring_graph):
    config = ClassificationConfig(overrides={"ring": "cryptography"})
    graph = classify_graph(serde_ring_graph, config)
    return create_epoch(
        graph,
        serde_ring_lock,
        vendor_digest="ab" * 32,
        config_digest=config.digest(),
        created_at=T0,
    )


# ── create_epoch ─────────────────────────────────────────────────────────


class TestCreateEpoch:
    def test_fields(self, epoch, serde_ring_lock):
        assert epoch.id.startswith("epoch-")
        assert epoch.project_id == "demo"
        assert epoch.created_at == "2026-01-05T12:00:00+00:00"
        assert epoch.vendor_digest == "ab" * 32
        assert epoch.graph_digest == epoch.graph_snapshot.digest
        assert len(epoch.lockfile_digest) == 64

    def test_id_is_content_derived(self, epoch, serde_ring_lock):
        later = create_epoch(
            epoch.graph_snapshot,
            serde_ring_lock,
            vendor_digest=epoch.vendor_digest,
            config_digest=epoch.config_digest,
            created_at=T0 + timedelta(days=3),
        )
        assert later.id == epoch.id

    def test_id_tracks_vendor_digest(self, epoch, serde_ring_lock):
        other = create_epoch(epoch.graph_snapshot, serde_ring_lock, created_at=T0)
        assert other.id != epoch.id

    def test_created_at_normalized_to_utc(self, serde_ring_graph, serde_ring_lock):
        local = datetime(2026, 1, 5, 14, 0, 0, tzinfo=timezone(timedelta(hours=2)))
        assert create_epoch(serde_ring_graph, serde_ring_lock, created_at=local).created_at == (
            "2026-01-05T12:00:00+00:00"
        )

    def test_dict_round_trip(self, epoch):
        assert Epoch.from_dict(epoch.to_dict()) == epoch

    def test_tampered_document_rejected(self, epoch):
        data = epoch.to_dict()
        data["vendor_digest"] = "00" * 32
        with pytest.raises(EpochError, match="does not match"):
            Epoch.from_dict(data)

    def test_malformed_document_rejected(self, epoch):
        data = epoch.to_dict()
        del data["lockfile_digest"]
        with pytest.raises(EpochError):
            Epoch.from_dict(data)


# ── LocalEpochStore ──────────────────────────────────────────────────────


class TestLocalEpochStore:
    def test_save_and_get(self, store, epoch):
        store.save(epoch)
        assert store.get(epoch.id) == epoch
        path = store.base_dir / "demo" / f"{epoch.id}.json"
        assert json.loads(path.read_text())["id"] == epoch.id

    def test_append_only(self, store, epoch):
        store.save(epoch)
        with pytest.raises(EpochExistsError):
            store.save(epoch)

    def test_get_missing(self, store):
        with pytest.raises(EpochNotFoundError):
            store.get("epoch-doesnotexist")

    def test_list_oldest_first(self, store, epoch, serde_ring_lock, tmp_path):
        newer_graph = build(
            serde_ring_lock.replace("1.0.210", "1.0.211"),
            project_root=tmp_path,
            project_id="demo",
        )
        newer = create_epoch(newer_graph, serde_ring_lock, created_at=T0 + timedelta(hours=1))
        store.save(newer)
        store.save(epoch)

        assert [e.id for e in store.list("demo")] == [epoch.id, newer.id]
        assert store.latest("demo").id == newer.id

    def test_list_filters_by_project(self, store, epoch, serde_ring_lock, tmp_path):
        other_graph = build(serde_ring_lock, project_root=tmp_path, project_id="other/project")
        other = create_epoch(other_graph, serde_ring_lock, created_at=T0)
        store.save(epoch)
        store.save(other)

        assert [e.project_id for e in store.list("demo")] == ["demo"]
        assert [e.project_id for e in store.list("other/project")] == ["other/project"]
        assert len(store.list()) == 2

    def test_latest_when_empty(self, store):
        assert store.latest("demo") is None
        assert store.list() == []

    def test_corrupt_file(self, store, epoch):
        store.save(epoch)
        path = store.base_dir / "demo" / f"{epoch.id}.json"
        path.write_text("{")
        with pytest.raises(EpochError):
            store.get(epoch.id)


class TestCompareEpochs:
    def test_drift_between_epochs(self, epoch, serde_ring_lock, tmp_path):
        lock = serde_ring_lock.replace('version = "0.17.8"', 'version = "0.17.9"')
        graph = classify_graph(
            build(lock, project_root=tmp_path, project_id="demo"),
            ClassificationConfig(overrides={"ring": "cryptography"}),
        )
        current = create_epoch(graph, lock, created_at=T0 + timedelta(days=1))

        [record] = compare_epochs(epoch, current)
        assert record.name == "ring"
        assert record.kind is DriftKind.VERSION_CHANGED
        assert record.priority.value == "high"
