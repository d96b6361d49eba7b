"""Tests for ReadinessWaiter."""

import pytest

from lakeorch.schemas import ResourceSelector, ResourceState, ResourceStatus
from lakeorch.waiter import ReadinessWaiter

from conftest import SCOPE, pending, ready


@pytest.fixture
def waiter(cluster, clock):
    return ReadinessWaiter(cluster, poll_interval_seconds=10, sleep=clock.sleep, clock=clock)


class TestReadinessWaiter:
    """Tests for bounded polling."""

    @pytest.mark.parametrize("timeout", [None, 0, -5])
    def test_requires_positive_timeout(self, waiter, timeout):
        with pytest.raises(ValueError, match="positive timeout"):
            waiter.wait(SCOPE, timeout)

    def test_converges_immediately(self, waiter, cluster, clock):
        cluster.set_scope(SCOPE, [ready("a"), ready("b")])

        result = waiter.wait(SCOPE, 60)

        assert result.converged
        assert (result.total, result.ready) == (2, 2)
        assert result.not_ready == []
        assert clock.sleeps == []

    def test_succeeded_resources_count_as_converged(self, waiter, cluster):
        job = ResourceState(name="init-job", status=ResourceStatus.SUCCEEDED, ready=False)
        cluster.set_scope(SCOPE, [ready("a"), job])

        assert waiter.wait(SCOPE, 60).converged

    def test_polls_at_fixed_interval(self, waiter, cluster, clock):
        cluster.set_scope(SCOPE, [pending("a")], [pending("a")], [ready("a")])

        result = waiter.wait(SCOPE, 60)

        assert result.converged
        assert clock.sleeps == [10, 10]
        assert result.elapsed_seconds == 20

    def test_timeout_returns_last_observation(self, waiter, cluster, clock):
        cluster.set_scope(SCOPE, [ready("a"), pending("b")])

        result = waiter.wait(SCOPE, 30)

        assert not result.converged
        assert (result.total, result.ready) == (2, 1)
        assert [r.name for r in result.not_ready] == ["b"]
        assert clock.now == 30

    def test_last_sleep_is_clamped_to_ceiling(self, waiter, cluster, clock):
        cluster.set_scope(SCOPE, [pending("a")])

        waiter.wait(SCOPE, 25)

        assert clock.sleeps == [10, 10, 5]

    def test_empty_scope_is_not_converged(self, waiter):
        result = waiter.wait(SCOPE, 20)

        assert not result.converged
        assert result.total == 0

    def test_query_errors_keep_polling(self, waiter, cluster, clock):
        cluster.failing_scopes.add(SCOPE)
        cluster.set_scope(SCOPE, [ready("a")])

        original_sleep = clock.sleep

        def recover(seconds):
            cluster.failing_scopes.clear()
            original_sleep(seconds)

        waiter._sleep = recover

        result = waiter.wait(SCOPE, 60)

        assert result.converged
        assert clock.now == 10

    def test_to_dict(self, waiter, cluster):
        cluster.set_scope(SCOPE, [pending("a")])

        data = waiter.wait(SCOPE, 10).to_dict()

        assert data["converged"] is False
        assert data["not_ready"][0]["name"] == "a"

    def test_finished_pods_are_excluded_when_scope_asks(self, waiter, cluster):
        selector = ResourceSelector(namespace="test", exclude_finished=True)
        job = ResourceState(name="etcd-single-cronjob-2891-x", status=ResourceStatus.FAILED, ready=False)
        cluster.set_scope(selector, [ready("etcd-single-0"), job])

        result = waiter.wait(selector, 60)

        assert result.converged
        assert (result.total, result.ready) == (1, 1)
        assert [r.name for r in result.excluded] == ["etcd-single-cronjob-2891-x"]
        assert result.to_dict()["excluded"][0]["status"] == "failed"

    def test_failed_pod_counts_when_scope_tracks_everything(self, waiter, cluster):
        job = ResourceState(name="etcd-single-cronjob-2891-x", status=ResourceStatus.FAILED, ready=False)
        cluster.set_scope(SCOPE, [ready("etcd-single-0"), job])

        result = waiter.wait(SCOPE, 20)

        assert not result.converged
        assert [r.name for r in result.not_ready] == ["etcd-single-cronjob-2891-x"]
        assert result.excluded == []
