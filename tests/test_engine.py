"""Tests for the probe/apply/confirm step engine."""

from __future__ import annotations

import subprocess

import pytest

from rubyvps.engine import APPLIED, FAILED, PENDING, SKIPPED, ProvisioningStep, StepEngine
from rubyvps.errors import ApplyError, NonFatalWarning, ProbeError


class Resource:
    """A toggle standing in for one piece of host state."""

    def __init__(self, present: bool = False, converges: bool = True):
        self.present = present
        self.converges = converges
        self.applied = 0

    def probe(self) -> bool:
        return self.present

    def apply(self) -> None:
        self.applied += 1
        if self.converges:
            self.present = True


def step(name: str, resource: Resource, **kwargs) -> ProvisioningStep:
    return ProvisioningStep(name, resource.probe, resource.apply, **kwargs)


@pytest.fixture
def engine() -> StepEngine:
    return StepEngine(show_progress=False)


class TestProbeAndApply:

    def test_satisfied_step_is_skipped(self, engine: StepEngine) -> None:
        r = Resource(present=True)
        report = engine.run([step("r", r)])
        assert report.status_of("r") == SKIPPED
        assert r.applied == 0

    def test_missing_state_is_applied_and_confirmed(self, engine: StepEngine) -> None:
        r = Resource()
        report = engine.run([step("r", r)])
        assert report.status_of("r") == APPLIED
        assert r.applied == 1
        assert [x.name for x in report.changed] == ["r"]

    def test_second_run_changes_nothing(self, engine: StepEngine) -> None:
        resources = [Resource(), Resource(present=True), Resource()]
        steps = [step(f"s{i}", r) for i, r in enumerate(resources)]
        engine.run(steps)
        report = engine.run(steps)
        assert report.changed == []
        assert all(r.applied <= 1 for r in resources)

    def test_steps_run_in_order(self, engine: StepEngine) -> None:
        order = []

        def make(name: str) -> ProvisioningStep:
            return ProvisioningStep(name, lambda: name in order, lambda: order.append(name))

        report = engine.run([make(n) for n in ("c", "a", "b")])
        assert order == ["c", "a", "b"]
        assert [r.name for r in report.results] == ["c", "a", "b"]


class TestFailures:

    def test_non_convergence_aborts_and_keeps_earlier_effects(self, engine: StepEngine) -> None:
        first = Resource()
        stuck = Resource(converges=False)
        last = Resource()
        with pytest.raises(ApplyError) as excinfo:
            engine.run([step("first", first), step("stuck", stuck), step("last", last)])

        assert "did not converge" in str(excinfo.value)
        assert first.present
        assert last.applied == 0
        report = excinfo.value.report
        assert report.status_of("first") == APPLIED
        assert report.status_of("stuck") == FAILED
        assert report.status_of("last") is None

    def test_command_failure_becomes_apply_error(self, engine: StepEngine) -> None:
        def apply() -> None:
            raise subprocess.CalledProcessError(100, ["apt-get", "install"], stderr="E: Unable to locate package")

        with pytest.raises(ApplyError) as excinfo:
            engine.run([ProvisioningStep("pkg", lambda: False, apply)])
        assert "Unable to locate package" in str(excinfo.value)

    def test_probe_exception_becomes_probe_error(self, engine: StepEngine) -> None:
        def probe() -> bool:
            raise RuntimeError("boom")

        with pytest.raises(ProbeError):
            engine.run([ProvisioningStep("p", probe, lambda: None)])

    def test_check_only_step_fails_when_unsatisfied(self, engine: StepEngine) -> None:
        with pytest.raises(ApplyError):
            engine.run([ProvisioningStep("check", lambda: False)])

    def test_non_fatal_step_is_reported_and_run_continues(self, engine: StepEngine) -> None:
        after = Resource()
        stuck = Resource(converges=False)
        report = engine.run([step("optional", stuck, fatal=False), step("after", after)])
        assert report.status_of("optional") == FAILED
        assert report.status_of("after") == APPLIED
        assert not report.ok

    def test_non_fatal_warning_never_aborts(self, engine: StepEngine) -> None:
        def apply() -> None:
            raise NonFatalWarning("certificate request failed")

        report = engine.run([ProvisioningStep("cert", lambda: False, apply), ProvisioningStep("x", lambda: True)])
        assert report.status_of("cert") == FAILED
        assert report.status_of("x") == SKIPPED


class TestDryRun:

    def test_dry_run_only_probes(self) -> None:
        missing = Resource()
        present = Resource(present=True)
        report = StepEngine(dry_run=True, show_progress=False).run([step("m", missing), step("p", present)])
        assert missing.applied == 0
        assert report.status_of("m") == PENDING
        assert report.status_of("p") == SKIPPED
        assert [r.name for r in report.pending] == ["m"]


class TestListener:

    def test_listener_sees_every_result(self) -> None:
        seen = []
        StepEngine(listener=seen.append, show_progress=False).run([step("a", Resource()), step("b", Resource(True))])
        assert [(r.name, r.status) for r in seen] == [("a", APPLIED), ("b", SKIPPED)]
