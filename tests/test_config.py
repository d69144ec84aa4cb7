"""Tests for environment configuration, retries and events."""
from itertools import islice

import pytest

from strata.core.config import StrataConfig, get_config, set_config
from strata.core.errors import ConfigurationError, ConflictError
from strata.core.events import JournalEventRecorder, read_journal
from strata.core.hashing import hash_object, hash_value
from strata.core.retry import backoff_delays, retry
from strata.models.meta import ObjectMeta
from strata.models.node import Node


class TestStrataConfig:
    def test_defaults(self, monkeypatch):
        for var in ("STRATA_NAMESPACE", "STRATA_POOL_NAME", "STRATA_RESYNC_INTERVAL", "STRATA_WORKERS"):
            monkeypatch.delenv(var, raising=False)

        config = StrataConfig.from_env()

        assert config.resync_interval == 30.0
        assert config.workers == 2
        assert config.dev_dir == "/dev/disk/by-id"

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("STRATA_NAMESPACE", "storage")
        monkeypatch.setenv("STRATA_POOL_NAME", "cluster-a-xyzw")
        monkeypatch.setenv("STRATA_RESYNC_INTERVAL", "5")
        monkeypatch.setenv("STRATA_WORKERS", "4")
        monkeypatch.setenv("STRATA_STORE", "/tmp/s.json")

        config = StrataConfig.from_env()

        assert config.namespace == "storage"
        assert config.pool_name == "strata-cluster-a-xyzw"
        assert config.resync_interval == 5.0
        assert config.workers == 4
        assert config.store_path == "/tmp/s.json"

    def test_missing_namespace_is_fatal(self):
        with pytest.raises(ConfigurationError, match="STRATA_NAMESPACE"):
            StrataConfig().validate()

    def test_pool_engine_requires_pool_name(self):
        config = StrataConfig(namespace="storage")

        assert config.validate() is config
        with pytest.raises(ConfigurationError, match="STRATA_POOL_NAME"):
            config.validate(require_pool=True)

    def test_rejects_non_positive_workers(self):
        with pytest.raises(ConfigurationError):
            StrataConfig(namespace="storage", workers=0).validate()

    def test_global_config(self, monkeypatch):
        monkeypatch.setenv("STRATA_NAMESPACE", "from-env")
        assert get_config().namespace == "from-env"

        set_config(StrataConfig(namespace="explicit"))
        assert get_config().namespace == "explicit"


class TestRetry:
    def test_retries_listed_exceptions(self):
        calls = []

        @retry(max_attempts=3, delay=0, exceptions=(ConflictError,))
        def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise ConflictError("stale")
            return "ok"

        assert flaky() == "ok"
        assert len(calls) == 3

    def test_gives_up_after_max_attempts(self):
        @retry(max_attempts=2, delay=0, exceptions=(ConflictError,))
        def always_stale():
            raise ConflictError("stale")

        with pytest.raises(ConflictError):
            always_stale()

    def test_other_exceptions_propagate_immediately(self):
        calls = []

        @retry(max_attempts=3, delay=0, exceptions=(ConflictError,))
        def broken():
            calls.append(1)
            raise ValueError("bad")

        with pytest.raises(ValueError):
            broken()
        assert len(calls) == 1

    def test_backoff_delays_are_capped(self):
        assert list(islice(backoff_delays(1, 3, max_delay=5), 4)) == [1, 3, 5, 5]
        assert list(islice(backoff_delays(2, 1.0), 3)) == [2, 2, 2]


class TestEvents:
    def test_recorder_filters(self, recorder):
        node = Node(metadata=ObjectMeta(name="node-1"))
        recorder.normal(node, "Ready", "node is ready")
        recorder.warning(node, "Pressure", "disk pressure")

        assert recorder.reasons("Node", "node-1") == ["Ready", "Pressure"]
        assert recorder.events("Node", "other") == []

    def test_journal_round_trip(self, tmp_path):
        """Events written by one recorder are readable from the journal."""
        path = tmp_path / "events.jsonl"
        recorder = JournalEventRecorder(path)
        recorder.warning(Node(metadata=ObjectMeta(name="node-1")), "Pressure", "disk pressure")
        recorder.normal(Node(metadata=ObjectMeta(name="node-2")), "Ready", "ok")

        events = read_journal(path, kind="Node", name="node-1")

        assert [(e.type, e.reason, e.message) for e in events] == [("Warning", "Pressure", "disk pressure")]
        assert len(read_journal(path)) == 2

    def test_missing_journal_is_empty(self, tmp_path):
        assert read_journal(tmp_path / "none.jsonl") == []


class TestHashing:
    def test_stable_and_key_order_independent(self):
        assert hash_object({"a": 1, "b": 2}) == hash_object({"b": 2, "a": 1})
        assert hash_value("vol-1-pool-a") == hash_value("vol-1-pool-a")
        assert hash_value("vol-1-pool-a") != hash_value("vol-1-pool-b")
