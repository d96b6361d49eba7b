"""Tests for the kubectl, helm and S3 clients.

The CommandRunner is mocked; each test scripts the CommandResults the CLI
would produce and checks the parsed output and the arguments sent.
"""

import json
from unittest.mock import MagicMock

import pytest

from lakeorch.clients.helm import HelmClient, format_set_value
from lakeorch.clients.kubectl import KubectlClient, format_event, parse_node, parse_pod
from lakeorch.clients.storage import S3BucketClient
from lakeorch.errors import QueryError
from lakeorch.runner import CommandResult
from lakeorch.schemas import ResourceSelector, ResourceStatus

from conftest import FakeClock


def ok(stdout=""):
    return CommandResult(ok=True, exit_code=0, stdout=stdout, stderr="")


def fail(stderr, exit_code=1):
    return CommandResult(ok=False, exit_code=exit_code, stdout="", stderr=stderr)


def pod(name, phase="Running", ready=True, waiting_reason=None, restarts=0):
    state = {"waiting": {"reason": waiting_reason}} if waiting_reason else {"running": {}}
    return {
        "metadata": {"name": name},
        "status": {
            "phase": phase,
            "conditions": [{"type": "Ready", "status": "True" if ready else "False", "reason": "ContainersNotReady"}],
            "containerStatuses": [{"name": "main", "restartCount": restarts, "state": state}],
        },
    }


def runner_with(*results):
    runner = MagicMock()
    runner.run.side_effect = list(results)
    return runner


def args_of(runner, call=0):
    return runner.run.call_args_list[call].args[1]


# =============================================================================
# kubectl
# =============================================================================


class TestParsing:
    """Tests for kubectl object parsing."""

    def test_ready_pod(self):
        state = parse_pod(pod("api-0"))
        assert state.ready
        assert state.status == ResourceStatus.RUNNING
        assert state.reason is None

    def test_crashing_pod(self):
        state = parse_pod(pod("api-0", ready=False, waiting_reason="CrashLoopBackOff", restarts=5))
        assert not state.ready
        assert state.reason == "CrashLoopBackOff"
        assert state.restarts == 5

    def test_not_ready_without_container_reason(self):
        state = parse_pod(pod("api-0", phase="Pending", ready=False))
        assert state.status == ResourceStatus.PENDING
        assert state.reason == "ContainersNotReady"

    def test_completed_job_pod(self):
        state = parse_pod(pod("init-x", phase="Succeeded", ready=False))
        assert state.converged

    def test_node(self):
        node = {"metadata": {"name": "n1"}, "status": {"conditions": [{"type": "Ready", "status": "True"}]}}
        assert parse_node(node).ready

    def test_format_event(self):
        event = {
            "lastTimestamp": "2024-01-01T00:00:00Z",
            "type": "Warning",
            "reason": "BackOff",
            "message": "Back-off restarting failed container",
        }
        assert format_event(event) == "2024-01-01T00:00:00Z Warning BackOff Back-off restarting failed container"


class TestKubectlClient:
    """Tests for KubectlClient."""

    def test_query_builds_args_and_filters_names(self):
        items = {"items": [pod("api-0"), pod("etcd-0"), pod("platform-1", ready=False)]}
        runner = runner_with(ok(json.dumps(items)))
        client = KubectlClient(runner, namespace="ingext")

        states = client.query(ResourceSelector(
            namespace="ingext", label_selector="app=x", name_prefixes=("api-", "platform-"),
        ))

        assert [s.name for s in states] == ["api-0", "platform-1"]
        assert args_of(runner) == ["get", "pods", "-n", "ingext", "-l", "app=x", "-o", "json"]

    def test_query_failure_raises(self):
        client = KubectlClient(runner_with(fail("Unable to connect to the server")))

        with pytest.raises(QueryError, match="Unable to connect"):
            client.query(ResourceSelector(namespace="ingext"))

    def test_query_invalid_json_raises(self):
        client = KubectlClient(runner_with(ok("not json")))

        with pytest.raises(QueryError, match="invalid JSON"):
            client.query(ResourceSelector(namespace="ingext"))

    def test_query_exists(self):
        client = KubectlClient(runner_with(ok("serviceaccount/ingext-sa"), fail('serviceaccounts "x" not found')))

        assert client.query_exists("serviceaccount", "ingext-sa", "ingext")
        assert not client.query_exists("serviceaccount", "x", "ingext")

    def test_query_exists_inconclusive_raises(self):
        client = KubectlClient(runner_with(fail("Forbidden")))

        with pytest.raises(QueryError):
            client.query_exists("nodepools", "pool-merge")

    def test_delete_resource(self):
        runner = runner_with(ok())
        client = KubectlClient(runner, namespace="ingext")

        assert client.delete_resource("pods", "api-0")
        assert args_of(runner) == ["delete", "pods", "api-0", "-n", "ingext", "--wait=false"]

    @pytest.mark.parametrize("result,expected", [(ok("yes\n"), True), (fail("no"), False), (ok("no"), False)])
    def test_can_i(self, result, expected):
        runner = runner_with(result)
        client = KubectlClient(runner, namespace="ingext")

        assert client.can_i("get", "secrets", "ingext-sa") is expected
        assert "system:serviceaccount:ingext:ingext-sa" in args_of(runner)

    def test_recent_output_prefers_previous(self):
        runner = runner_with(ok("previous crash"))
        client = KubectlClient(runner)

        assert client.fetch_recent_output("api-0", "ingext", prefer_previous=True) == "previous crash"
        assert "--previous" in args_of(runner)
        assert "--tail=200" in args_of(runner)

    def test_recent_output_falls_back_to_current(self):
        runner = runner_with(fail("previous terminated container not found"), ok("current log"))
        client = KubectlClient(runner)

        assert client.fetch_recent_output("api-0", "ingext", tail_lines=50) == "current log"
        assert "--previous" not in args_of(runner, 1)

    def test_recent_output_empty_on_failure(self):
        client = KubectlClient(runner_with(fail("pod not found")))

        assert client.fetch_recent_output("api-0", "ingext", prefer_previous=False) == ""

    def test_recent_events_tail(self):
        events = {"items": [{"type": "Normal", "reason": f"R{i}", "message": "m"} for i in range(5)]}
        client = KubectlClient(runner_with(ok(json.dumps(events))))

        text = client.fetch_recent_events("ingext", tail=2)

        assert text.splitlines() == ["Normal R3 m", "Normal R4 m"]


# =============================================================================
# helm
# =============================================================================


def helm_list(name, status="deployed", revision=1):
    return ok(json.dumps([{"name": name, "chart": f"{name}-0.1.0", "status": status, "revision": str(revision)}]))


class TestHelmClient:
    """Tests for HelmClient."""

    def test_format_set_value(self):
        assert format_set_value(True) == "true"
        assert format_set_value(False) == "false"
        assert format_set_value(3) == "3"

    def test_install_builds_upgrade_install(self):
        runner = runner_with(ok("[]"), ok("Release upgraded"), helm_list("lake", revision=3))
        client = HelmClient(runner, namespace="ingext")

        record = client.install_or_upgrade(
            "lake", "oci://r/lake", {"s3.bucket": "b", "debug": True}, version="1.2.0", release_wait="15m",
        )

        assert record.deployed
        assert record.revision == 3
        assert args_of(runner, 1) == [
            "upgrade", "--install", "lake", "oci://r/lake", "--namespace", "ingext",
            "--version", "1.2.0",
            "--set", "s3.bucket=b", "--set", "debug=true",
            "--wait", "--timeout", "15m",
        ]

    def test_install_failure_returns_failed_record(self):
        runner = runner_with(ok("[]"), fail("Error: quota exceeded"))
        client = HelmClient(runner)

        record = client.install_or_upgrade("lake", "oci://r/lake", {})

        assert record.status == "failed"
        assert record.error == "Error: quota exceeded"

    def test_revision_read_failure_is_not_fatal(self):
        runner = runner_with(ok("[]"), ok(), fail("list failed"))

        record = HelmClient(runner).install_or_upgrade("lake", "oci://r/lake", {})

        assert record.deployed
        assert record.revision == 0

    def test_get_release(self):
        client = HelmClient(runner_with(helm_list("lake", status="Failed", revision=2)))

        record = client.get_release("lake")

        assert record.status == "failed"
        assert record.revision == 2
        assert record.source == "lake-0.1.0"

    def test_get_release_missing(self):
        assert HelmClient(runner_with(ok("[]"))).get_release("lake") is None

    def test_list_failure_raises(self):
        with pytest.raises(QueryError):
            HelmClient(runner_with(fail("cluster unreachable"))).list_releases()

    def test_waits_for_pending_operation(self):
        clock = FakeClock()
        runner = runner_with(
            helm_list("lake", status="pending-upgrade"),
            helm_list("lake", status="deployed"),
            ok(),
            helm_list("lake", revision=2),
        )
        client = HelmClient(runner, lock_poll_seconds=10, sleep=clock.sleep, clock=clock)

        record = client.install_or_upgrade("lake", "oci://r/lake", {})

        assert record.deployed
        assert clock.sleeps == [10]

    def test_lock_wait_is_bounded(self):
        clock = FakeClock()
        runner = MagicMock()
        runner.run.return_value = helm_list("lake", status="pending-install")
        client = HelmClient(runner, lock_wait_seconds=30, lock_poll_seconds=10, sleep=clock.sleep, clock=clock)

        assert client.wait_for_unlock("lake") is False
        assert clock.now == 30


# =============================================================================
# S3
# =============================================================================


class TestS3BucketClient:
    def test_exists(self):
        runner = runner_with(ok())

        assert S3BucketClient(runner, region="us-east-1").exists("lake")
        assert args_of(runner) == ["s3api", "head-bucket", "--bucket", "lake", "--region", "us-east-1"]

    def test_missing(self):
        runner = runner_with(fail("An error occurred (404) when calling the HeadBucket operation: Not Found"))

        assert not S3BucketClient(runner).exists("lake")

    def test_other_failures_raise(self):
        runner = runner_with(fail("An error occurred (403) when calling the HeadBucket operation: Forbidden"))

        with pytest.raises(QueryError, match="head-bucket lake failed"):
            S3BucketClient(runner).exists("lake")
