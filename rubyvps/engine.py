"""
Step engine

Runs an ordered sequence of idempotent steps. Each step is probed first and
only applied when the probe reports the desired state is missing; after
applying, the step is probed again and the run aborts if it did not converge.
Nothing is rolled back: re-running the same sequence is the recovery path.
"""

import logging
import subprocess
import time
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional, Tuple

from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

from . import LOGGER_NAME
from .errors import ApplyError, NonFatalWarning, ProbeError, ProvisionError
from .shell import describe_failure
from .ui import NordColors, console

logger = logging.getLogger(LOGGER_NAME)

SKIPPED = "skipped"
APPLIED = "applied"
PENDING = "pending"
FAILED = "failed"


@dataclass
class ProvisioningStep:
    """
    One desired piece of host state.

    ``probe`` must be read-only and return True when the state is already in
    place. ``apply`` brings it into place; a step without ``apply`` is a pure
    check. Non-fatal steps are reported as failed without stopping the run.
    """

    name: str
    probe: Callable[[], bool]
    apply: Optional[Callable[[], None]] = None
    fatal: bool = True
    description: str = ""


@dataclass
class StepResult:
    name: str
    status: str
    message: str = ""
    elapsed: float = 0.0


@dataclass
class RunReport:
    results: List[StepResult] = field(default_factory=list)

    def _with_status(self, status: str) -> List[StepResult]:
        return [r for r in self.results if r.status == status]

    @property
    def changed(self) -> List[StepResult]:
        return self._with_status(APPLIED)

    @property
    def failed(self) -> List[StepResult]:
        return self._with_status(FAILED)

    @property
    def pending(self) -> List[StepResult]:
        return self._with_status(PENDING)

    @property
    def ok(self) -> bool:
        return not self.failed

    def status_of(self, name: str) -> Optional[str]:
        for r in self.results:
            if r.name == name:
                return r.status
        return None

    def rows(self) -> List[Tuple[str, str, str]]:
        return [(r.name, r.status, r.message) for r in self.results]


class StepEngine:
    """Probe/apply/confirm loop over an ordered list of steps."""

    def __init__(
        self,
        dry_run: bool = False,
        listener: Optional[Callable[[StepResult], None]] = None,
        show_progress: bool = True,
    ):
        self.dry_run = dry_run
        self.listener = listener
        self.show_progress = show_progress

    def run(self, steps: Iterable[ProvisioningStep]) -> RunReport:
        """
        Run ``steps`` in order.

        A fatal failure is re-raised with the partial report attached as the
        exception's ``report`` attribute.
        """
        report = RunReport()
        for step in steps:
            try:
                result = self._run_step(step)
            except ProvisionError as e:
                report.results.append(StepResult(step.name, FAILED, str(e)))
                e.report = report  # type: ignore[attr-defined]
                raise
            report.results.append(result)
            if self.listener:
                self.listener(result)
        return report

    def _run_step(self, step: ProvisioningStep) -> StepResult:
        start = time.time()
        if self._probe(step):
            logger.info(f"{step.name}: already in place")
            return StepResult(step.name, SKIPPED, "Already in place", time.time() - start)

        if self.dry_run:
            logger.info(f"{step.name}: would be applied")
            return StepResult(step.name, PENDING, step.description or "Would apply")

        logger.info(f"{step.name}: applying")
        try:
            self._apply(step)
            if not self._probe(step):
                raise ApplyError(f"{step.name}: state did not converge after applying")
        except NonFatalWarning as e:
            logger.warning(str(e))
            return StepResult(step.name, FAILED, str(e), time.time() - start)
        except (ApplyError, ProbeError) as e:
            if step.fatal:
                logger.error(str(e))
                raise
            logger.warning(str(e))
            return StepResult(step.name, FAILED, str(e), time.time() - start)

        elapsed = time.time() - start
        logger.info(f"{step.name}: done in {elapsed:.2f}s")
        return StepResult(step.name, APPLIED, f"Completed in {elapsed:.2f}s", elapsed)

    def _probe(self, step: ProvisioningStep) -> bool:
        try:
            return bool(step.probe())
        except ProvisionError:
            raise
        except subprocess.CalledProcessError as e:
            raise ProbeError(f"{step.name}: {describe_failure(e)}") from e
        except Exception as e:
            raise ProbeError(f"{step.name}: could not determine state: {e}") from e

    def _apply(self, step: ProvisioningStep) -> None:
        if step.apply is None:
            raise ApplyError(f"{step.name}: check failed")

        try:
            if self.show_progress:
                with Progress(
                    SpinnerColumn(style=f"bold {NordColors.FROST_1}"),
                    TextColumn("{task.description}"),
                    BarColumn(bar_width=40, style=NordColors.FROST_4, complete_style=NordColors.FROST_2),
                    TimeElapsedColumn(),
                    console=console,
                    transient=True,
                ) as progress:
                    progress.add_task(step.description or step.name, total=None)
                    step.apply()
            else:
                step.apply()
        except ProvisionError:
            raise
        except subprocess.CalledProcessError as e:
            raise ApplyError(f"{step.name}: {describe_failure(e)}") from e
        except subprocess.TimeoutExpired as e:
            raise ApplyError(f"{step.name}: command timed out after {e.timeout} seconds") from e
        except OSError as e:
            raise ApplyError(f"{step.name}: {e}") from e
