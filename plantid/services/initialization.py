"""
One-time startup sequence.

Steps run in a fixed order and stop at the first failure:
1. Capture permission (checked, then requested once)
2. Record store schema
3. Classifier readiness

Nothing is retried. The whole app is gated on a ready report.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from plantid.capture.permission import CapturePermission
from plantid.core.errors import InitializationError, PlantIdError
from plantid.ml.base import BaseSpeciesClassifier
from plantid.models.enums import InitStep
from plantid.storage.base import RecordStore

logger = logging.getLogger(__name__)

# User-facing messages per failed step
STEP_MESSAGES = {
    InitStep.CAPTURE_PERMISSION: "Camera permission is required",
    InitStep.STORAGE_SCHEMA: "Could not prepare identification history",
    InitStep.CLASSIFIER_READINESS: "Could not load the identification model",
}


@dataclass
class InitializationReport:
    """Outcome of the startup sequence."""
    ready: bool = False
    completed_steps: list[InitStep] = field(default_factory=list)
    failed_step: Optional[InitStep] = None
    error: Optional[InitializationError] = None
    step_times_ms: dict[str, float] = field(default_factory=dict)

    def raise_for_status(self) -> None:
        """Raise a copy of the startup error if the app is not ready."""
        if self.error is not None:
            # Fresh instance per call; the stored one keeps its own traceback
            raise InitializationError(self.error.step, self.error.message) from self.error
        if not self.ready:
            raise InitializationError(None, "App has not been initialized")


class InitializationSequencer:
    """
    Runs the startup steps once and remembers the outcome.

    Usage:
        sequencer = InitializationSequencer(permission, store, classifier)
        report = await sequencer.run()
        if not report.ready:
            show_error(report.error.message)
    """

    def __init__(
        self,
        permission: CapturePermission,
        record_store: RecordStore,
        classifier: BaseSpeciesClassifier,
        model_load_timeout: Optional[float] = 30.0,
    ):
        self.permission = permission
        self.record_store = record_store
        self.classifier = classifier
        self.model_load_timeout = model_load_timeout
        self._report: Optional[InitializationReport] = None

    @property
    def report(self) -> Optional[InitializationReport]:
        return self._report

    async def run(self) -> InitializationReport:
        """Run the sequence, or return the earlier outcome if it already ran."""
        if self._report is not None:
            return self._report

        report = InitializationReport()
        steps: list[tuple[InitStep, Callable[[], Awaitable[None]]]] = [
            (InitStep.CAPTURE_PERMISSION, self._acquire_permission),
            (InitStep.STORAGE_SCHEMA, self._ensure_schema),
            (InitStep.CLASSIFIER_READINESS, self._ensure_classifier),
        ]

        for step, action in steps:
            start = time.perf_counter()
            try:
                await action()
            except InitializationError as e:
                report.failed_step, report.error = step, e
            except Exception as e:
                detail = e.message if isinstance(e, PlantIdError) else str(e)
                logger.error(f"Initialization step {step.value} failed: {detail}")
                report.failed_step = step
                report.error = InitializationError(step, STEP_MESSAGES[step])
                report.error.__cause__ = e
            finally:
                report.step_times_ms[step.value] = (time.perf_counter() - start) * 1000

            if report.error is not None:
                logger.error(f"Initialization halted at {step.value}: {report.error.message}")
                break
            report.completed_steps.append(step)
            logger.info(f"Initialization step complete: {step.value}")

        report.ready = report.error is None
        if report.ready:
            logger.info("Initialization complete")
        self._report = report
        return report

    async def _acquire_permission(self) -> None:
        if await self.permission.is_granted():
            return
        if not await self.permission.request():
            raise InitializationError(
                InitStep.CAPTURE_PERMISSION, STEP_MESSAGES[InitStep.CAPTURE_PERMISSION]
            )

    async def _ensure_schema(self) -> None:
        await asyncio.to_thread(self.record_store.ensure_schema)

    async def _ensure_classifier(self) -> None:
        try:
            await asyncio.wait_for(
                asyncio.to_thread(self.classifier.ensure_loaded),
                timeout=self.model_load_timeout,
            )
        except asyncio.TimeoutError:
            raise InitializationError(
                InitStep.CLASSIFIER_READINESS,
                f"Model did not load within {self.model_load_timeout}s",
            )
        if not self.classifier.is_loaded:
            raise InitializationError(
                InitStep.CLASSIFIER_READINESS, STEP_MESSAGES[InitStep.CLASSIFIER_READINESS]
            )
