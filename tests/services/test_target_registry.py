"""
Unit tests for the target registry
"""
import pytest
from datetime import datetime, timezone
from api.services.exceptions import ValidationError
from api.services.probe_service import Classification, ProbeResult
from api.services.target_registry import Target, TargetRegistry, normalize_url

NOW = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

SUCCESS = ProbeResult(Classification.SUCCESS, 120, http_status=200)
WARNING = ProbeResult(Classification.WARNING, 6200, "slow but reachable", via_fallback=True)
ERROR = ProbeResult(Classification.ERROR, 10000, "timeout after 10000ms")


@pytest.fixture
def registry():
    return TargetRegistry()


class TestAdd:
    def test_prepends_https_when_scheme_missing(self, registry):
        target = registry.add("example.com")
        assert target.url == "https://example.com"

    @pytest.mark.parametrize("url", ["http://x.com", "https://x.com/path?q=1"])
    def test_keeps_existing_scheme(self, registry, url):
        assert registry.add(url).url == url

    def test_strips_surrounding_whitespace(self, registry):
        assert registry.add("  example.com/ping  ").url == "https://example.com/ping"

    @pytest.mark.parametrize("url", ["", "   ", "\t\n"])
    def test_rejects_blank_url_without_mutation(self, registry, url):
        with pytest.raises(ValidationError):
            registry.add(url)
        assert registry.list() == []

    def test_new_target_is_idle_and_never_probed(self, registry):
        target = registry.add("example.com")
        assert target.status == "idle"
        assert target.last_probe_at is None
        assert target.last_latency_ms is None
        assert target.consecutive_errors == 0

    def test_ids_are_unique(self, registry):
        ids = {registry.add(f"host{i}.example.com").id for i in range(20)}
        assert len(ids) == 20

    def test_list_preserves_insertion_order(self, registry):
        for host in ["c.com", "a.com", "b.com"]:
            registry.add(host)
        assert [t.url for t in registry.list()] == [
            "https://c.com",
            "https://a.com",
            "https://b.com",
        ]


class TestRemove:
    def test_remove_existing(self, registry):
        target = registry.add("example.com")
        removed = registry.remove(target.id)
        assert removed.id == target.id
        assert len(registry) == 0

    def test_remove_unknown_is_noop(self, registry):
        registry.add("example.com")
        assert registry.remove("missing") is None
        assert len(registry) == 1


class TestApplyProbeResult:
    def test_success_updates_state(self, registry):
        target = registry.add("example.com")
        updated = registry.apply_probe_result(target.id, SUCCESS, NOW)

        assert updated.status == "success"
        assert updated.last_probe_at == NOW
        assert updated.last_latency_ms == 120
        assert updated.last_http_status == 200
        assert registry.get(target.id) == updated

    def test_success_resets_consecutive_errors(self, registry):
        target = registry.add("example.com")
        for _ in range(3):
            registry.apply_probe_result(target.id, ERROR, NOW)
        updated = registry.apply_probe_result(target.id, SUCCESS, NOW)

        assert updated.consecutive_errors == 0
        assert updated.last_error is None

    @pytest.mark.parametrize("count", [1, 2, 5])
    def test_non_success_increments_by_one_each_time(self, registry, count):
        target = registry.add("example.com")
        results = [ERROR, WARNING]
        for i in range(count):
            updated = registry.apply_probe_result(target.id, results[i % 2], NOW)
        assert updated.consecutive_errors == count

    def test_error_records_reason(self, registry):
        target = registry.add("example.com")
        updated = registry.apply_probe_result(target.id, ERROR, NOW)
        assert updated.status == "error"
        assert updated.last_error == "timeout after 10000ms"
        assert updated.last_latency_ms == 10000

    def test_error_without_duration_clears_latency(self, registry):
        target = registry.add("example.com")
        registry.apply_probe_result(target.id, SUCCESS, NOW)
        crashed = ProbeResult(Classification.ERROR, None, "RuntimeError: boom")
        updated = registry.apply_probe_result(target.id, crashed, NOW)
        assert updated.last_latency_ms is None

    def test_result_for_removed_target_is_dropped(self, registry):
        keep = registry.add("keep.com")
        gone = registry.add("gone.com")
        before = registry.list()
        registry.remove(gone.id)

        assert registry.apply_probe_result(gone.id, SUCCESS, NOW) is None
        assert registry.list() == [t for t in before if t.id == keep.id]


class TestLoad:
    def test_load_replaces_content(self, registry):
        registry.add("old.com")
        targets = [Target(id="a", url="https://a.com"), Target(id="b", url="https://b.com", status="error")]
        registry.load(targets)
        assert [t.id for t in registry.list()] == ["a", "b"]

    def test_clear(self, registry):
        registry.add("example.com")
        registry.clear()
        assert registry.list() == []


def test_normalize_url_rejects_none():
    with pytest.raises(ValidationError):
        normalize_url(None)
