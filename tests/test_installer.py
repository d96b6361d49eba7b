"""Tests for ResourceInstaller."""

import pytest

from lakeorch.errors import CommandError
from lakeorch.installer import ResourceInstaller
from lakeorch.schemas import DeploymentUnit, ReleaseRecord

UNIT = DeploymentUnit(
    name="ingext-stack",
    source="oci://public.ecr.aws/ingext/ingext-stack",
    values={"namespace": "ingext"},
    release_wait="10m",
)


class SlowReleases:
    """Release operation that advances the clock and returns a canned record."""

    def __init__(self, clock, record=None, error=None, seconds=3.0):
        self.clock = clock
        self.record = record
        self.error = error
        self.seconds = seconds
        self.kwargs = None

    def install_or_upgrade(self, name, source, values, version=None, release_wait=None):
        self.kwargs = {"name": name, "source": source, "values": values, "version": version, "release_wait": release_wait}
        self.clock.sleep(self.seconds)
        if self.error is not None:
            raise self.error
        return self.record


class TestResourceInstaller:
    """Tests for install outcome records."""

    def test_successful_install(self, clock):
        record = ReleaseRecord(name=UNIT.name, source=UNIT.source, status="deployed", revision=4)
        releases = SlowReleases(clock, record=record)

        result = ResourceInstaller(releases, clock=clock).install(UNIT)

        assert result.deployed
        assert result.revision == 4
        assert result.elapsed_seconds == 3.0
        assert result.error is None
        assert releases.kwargs["release_wait"] == "10m"
        assert releases.kwargs["values"] == {"namespace": "ingext"}

    def test_failed_install_keeps_error_excerpt(self, clock):
        record = ReleaseRecord(name=UNIT.name, source=UNIT.source, status="failed", error="quota exceeded")

        result = ResourceInstaller(SlowReleases(clock, record=record), clock=clock).install(UNIT)

        assert not result.deployed
        assert result.error == "quota exceeded"

    def test_error_is_truncated(self, clock):
        record = ReleaseRecord(name=UNIT.name, source=UNIT.source, status="failed", error="x" * 2000)

        result = ResourceInstaller(
            SlowReleases(clock, record=record), error_excerpt_chars=100, clock=clock
        ).install(UNIT)

        assert len(result.error) == 100

    def test_exception_becomes_failed_record(self, clock):
        releases = SlowReleases(clock, error=CommandError("helm", "executable not found on PATH"))

        result = ResourceInstaller(releases, clock=clock).install(UNIT)

        assert result.status == "failed"
        assert result.error == "helm: executable not found on PATH"
        assert result.elapsed_seconds == 3.0

    @pytest.mark.parametrize("status", ["pending-install", "superseded"])
    def test_unexpected_status_gets_error(self, clock, status):
        record = ReleaseRecord(name=UNIT.name, source=UNIT.source, status=status)

        result = ResourceInstaller(SlowReleases(clock, record=record), clock=clock).install(UNIT)

        assert not result.deployed
        assert result.error == f"release ended in status '{status}'"
