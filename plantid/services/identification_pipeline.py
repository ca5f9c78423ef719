"""
Identification Pipeline Service

Runs one capture → classify → persist cycle:
1. Acquire an image from a capture source
2. Classify it (bounded by a timeout)
3. Append the top-1 prediction to the record store

Design Principles:
- At most one run is active; a second request is rejected, never queued
- Failures end the run in Failed and are recorded on it, not raised
- A storage failure keeps the classification result on the run, so it
  can still be shown even though it was not saved
"""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Optional

from plantid.capture.base import CaptureSource
from plantid.core.errors import (
    CaptureError,
    ClassificationError,
    ClassifierError,
    ClassifierUnavailable,
    InvalidRunTransition,
    PersistenceError,
    PipelineBusy,
    PlantIdError,
    StorageError,
)
from plantid.ml.base import BaseSpeciesClassifier
from plantid.models.domain import HistoryRecord, ImageHandle, Prediction
from plantid.models.enums import AcquisitionSource, RunStatus
from plantid.storage.base import RecordStore

logger = logging.getLogger(__name__)


_ALLOWED_TRANSITIONS: dict[RunStatus, set[RunStatus]] = {
    RunStatus.IDLE: {RunStatus.CAPTURING},
    RunStatus.CAPTURING: {RunStatus.CLASSIFYING, RunStatus.FAILED},
    RunStatus.CLASSIFYING: {RunStatus.PERSISTING, RunStatus.FAILED},
    RunStatus.PERSISTING: {RunStatus.DONE, RunStatus.FAILED},
    RunStatus.DONE: set(),
    RunStatus.FAILED: set(),
}


@dataclass
class RunMetrics:
    """Timing of each pipeline step."""
    total_time_ms: float = 0.0
    capture_time_ms: float = 0.0
    classification_time_ms: float = 0.0
    persistence_time_ms: float = 0.0


@dataclass
class PipelineRun:
    """
    One end-to-end identification attempt.

    Attributes:
        source: Where the image came from
        status: Current step; Done and Failed are terminal
        image: Handle produced by the capture step
        result: Predictions, best first, once classification succeeded
        record: The persisted top-1 record, once saved
        error: Why the run failed
    """
    source: AcquisitionSource
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    status: RunStatus = RunStatus.IDLE
    image: Optional[ImageHandle] = None
    result: Optional[list[Prediction]] = None
    record: Optional[HistoryRecord] = None
    error: Optional[PlantIdError] = None
    started_at: float = field(default_factory=time.time)
    finished_at: Optional[float] = None
    metrics: RunMetrics = field(default_factory=RunMetrics)

    @property
    def is_active(self) -> bool:
        return self.status.is_active

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def top_prediction(self) -> Optional[Prediction]:
        return self.result[0] if self.result else None

    @property
    def persisted(self) -> bool:
        return self.record is not None

    def advance(self, status: RunStatus) -> None:
        """Move to ``status``, rejecting transitions the lifecycle forbids."""
        if status not in _ALLOWED_TRANSITIONS[self.status]:
            raise InvalidRunTransition(
                f"Cannot move run {self.run_id} from {self.status.value} to {status.value}"
            )
        logger.debug(f"Run {self.run_id[:8]}: {self.status.value} -> {status.value}")
        self.status = status
        if status.is_terminal:
            self.finished_at = time.time()


class IdentificationPipeline:
    """
    Orchestrates identification runs and owns the busy-guard.

    Usage:
        pipeline = IdentificationPipeline(classifier, store)
        run = await pipeline.run(EncodedImageSource(frame_b64))
        if run.status is RunStatus.DONE:
            show(run.result)

    Run lifecycle:
    ```
    Idle → Capturing → Classifying → Persisting → Done
               │            │             │
               └────────────┴─────────────┴──→ Failed
    ```
    """

    def __init__(
        self,
        classifier: BaseSpeciesClassifier,
        record_store: RecordStore,
        classification_timeout: Optional[float] = 10.0,
    ):
        """
        Args:
            classifier: Loaded species classifier
            record_store: Store receiving the top-1 prediction
            classification_timeout: Seconds before classification is
                abandoned; None disables the timeout
        """
        self.classifier = classifier
        self.record_store = record_store
        self.classification_timeout = classification_timeout
        self._active: Optional[PipelineRun] = None
        # Classification abandoned on timeout whose worker thread is still running
        self._draining: Optional[asyncio.Future] = None

    @property
    def busy(self) -> bool:
        return self._active is not None or self._draining is not None

    @property
    def active_run(self) -> Optional[PipelineRun]:
        return self._active

    async def run(self, capture: CaptureSource) -> PipelineRun:
        """
        Execute one full run.

        Args:
            capture: Pending acquisition to feed the run

        Returns:
            The finished run, in Done or Failed

        Raises:
            PipelineBusy: If another run is still in progress
        """
        # Check and claim without awaiting in between
        if self._active is not None:
            logger.warning(
                f"Rejected {capture.source.value} acquisition: run "
                f"{self._active.run_id[:8]} is {self._active.status.value}"
            )
            raise PipelineBusy()
        if self._draining is not None:
            logger.warning(
                f"Rejected {capture.source.value} acquisition: "
                f"a timed-out classification is still running"
            )
            raise PipelineBusy()

        run = PipelineRun(source=capture.source)
        self._active = run
        pipeline_start = time.perf_counter()
        logger.info(f"Run {run.run_id[:8]} started ({run.source.value})")
        try:
            await self._execute(run, capture)
        finally:
            run.metrics.total_time_ms = (time.perf_counter() - pipeline_start) * 1000
            self._active = None

        logger.info(
            f"Run {run.run_id[:8]} finished: {run.status.value} "
            f"in {run.metrics.total_time_ms:.1f}ms"
        )
        return run

    async def _execute(self, run: PipelineRun, capture: CaptureSource) -> None:
        # Step 1: Capture
        run.advance(RunStatus.CAPTURING)
        step_start = time.perf_counter()
        try:
            run.image = await capture.acquire_image()
        except CaptureError as e:
            self._fail(run, e)
            return
        except Exception as e:
            logger.exception(f"Capture source raised unexpectedly: {e}")
            self._fail(run, CaptureError(f"Failed to capture image: {e}"))
            return
        finally:
            run.metrics.capture_time_ms = (time.perf_counter() - step_start) * 1000

        # Step 2: Classification
        run.advance(RunStatus.CLASSIFYING)
        step_start = time.perf_counter()
        classification = asyncio.ensure_future(
            asyncio.to_thread(self.classifier.classify, run.image)
        )
        try:
            predictions = await asyncio.wait_for(
                asyncio.shield(classification),
                timeout=self.classification_timeout,
            )
        except asyncio.TimeoutError:
            # The worker thread cannot be interrupted; stay busy until it returns
            self._hold_until_drained(classification)
            self._fail(run, ClassificationError(
                f"Classification timed out after {self.classification_timeout}s"
            ))
            return
        except asyncio.CancelledError:
            self._hold_until_drained(classification)
            raise
        except (ClassifierUnavailable, ClassifierError) as e:
            self._fail(run, ClassificationError(e.message))
            return
        except Exception as e:
            logger.exception(f"Classifier raised unexpectedly: {e}")
            self._fail(run, ClassificationError(f"Failed to identify the plant: {e}"))
            return
        finally:
            run.metrics.classification_time_ms = (time.perf_counter() - step_start) * 1000

        run.result = predictions

        # Step 3: Persist top-1
        run.advance(RunStatus.PERSISTING)
        top = predictions[0]
        step_start = time.perf_counter()
        try:
            run.record = await asyncio.to_thread(
                self.record_store.append, top.species_label, top.confidence
            )
        except StorageError as e:
            self._fail(run, PersistenceError(f"Identification was not saved: {e.message}"))
            return
        except Exception as e:
            logger.exception(f"Record store raised unexpectedly: {e}")
            self._fail(run, PersistenceError(f"Identification was not saved: {e}"))
            return
        finally:
            run.metrics.persistence_time_ms = (time.perf_counter() - step_start) * 1000

        run.advance(RunStatus.DONE)

    def _hold_until_drained(self, classification: asyncio.Future) -> None:
        if classification.done():
            return
        self._draining = classification
        classification.add_done_callback(self._drained)

    def _drained(self, classification: asyncio.Future) -> None:
        if self._draining is classification:
            self._draining = None
        if not classification.cancelled() and classification.exception() is not None:
            logger.warning(f"Abandoned classification failed: {classification.exception()}")
        else:
            logger.info("Abandoned classification finished; pipeline is free")

    def _fail(self, run: PipelineRun, error: PlantIdError) -> None:
        logger.warning(
            f"Run {run.run_id[:8]} failed while {run.status.value}: "
            f"{type(error).__name__}: {error.message}"
        )
        run.error = error
        run.advance(RunStatus.FAILED)
