"""
Screen state machine.

Decides which of Capture, Results and History is shown and which user
intents are legal right now. The presentation layer only reads
snapshots and sends intents; it never changes state directly.

Transitions:
```
            capture (Done)
  Capture ─────────────────→ Results
     ↑  ←── identify_another ──┘ │
     │                            │ show_history
     └── new_scan ── History ←────┘
                      │  ↑
          show_results└──┘ (only while a result is held)
```
``show_history`` is legal from every state. No transition happens while
a pipeline run is in flight.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional

from plantid.capture.base import CaptureSource
from plantid.core.errors import (
    PersistenceError,
    PipelineBusy,
    ScreenTransitionError,
    StorageError,
    StorageWriteError,
)
from plantid.models.domain import HistoryRecord
from plantid.models.enums import RunStatus, ScreenState
from plantid.services.identification_pipeline import IdentificationPipeline, PipelineRun
from plantid.services.initialization import InitializationReport
from plantid.storage.base import DEFAULT_HISTORY_LIMIT, RecordStore

logger = logging.getLogger(__name__)


@dataclass
class ScreenSnapshot:
    """Everything the presentation layer needs to render one frame."""
    state: ScreenState
    results_available: bool
    busy: bool
    active_status: Optional[RunStatus] = None
    run: Optional[PipelineRun] = None
    unsaved_run: Optional[PipelineRun] = None
    history: list[HistoryRecord] = field(default_factory=list)
    history_count: int = 0
    notice: Optional[str] = None


class ScreenStateMachine:
    """
    Screen model driven by named intents.

    Usage:
        screens = ScreenStateMachine(pipeline, store)
        screens.activate(await sequencer.run())
        await screens.capture(EncodedImageSource(frame_b64))
        screens.snapshot().state  # ScreenState.RESULTS on success
    """

    def __init__(
        self,
        pipeline: IdentificationPipeline,
        record_store: RecordStore,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
    ):
        self.pipeline = pipeline
        self.record_store = record_store
        self.history_limit = history_limit

        self._state: Optional[ScreenState] = None
        self.held_run: Optional[PipelineRun] = None
        self.unsaved_run: Optional[PipelineRun] = None
        self.history: list[HistoryRecord] = []
        self.history_count = 0
        self.notice: Optional[str] = None

    # === State ===

    @property
    def state(self) -> Optional[ScreenState]:
        """Current screen, or None before activation."""
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state is not None

    @property
    def results_available(self) -> bool:
        return self.held_run is not None and bool(self.held_run.result)

    def activate(self, report: InitializationReport) -> None:
        """
        Enter Capture once startup succeeded.

        Raises:
            InitializationError: If the report is not ready
        """
        report.raise_for_status()
        if self._state is None:
            self._enter(ScreenState.CAPTURE)

    def snapshot(self) -> ScreenSnapshot:
        if not self.is_active:
            raise ScreenTransitionError("App is not ready")
        active = self.pipeline.active_run
        return ScreenSnapshot(
            state=self._state,
            results_available=self.results_available,
            busy=self.pipeline.busy,
            active_status=active.status if active else None,
            run=self.held_run,
            unsaved_run=self.unsaved_run,
            history=list(self.history),
            history_count=self.history_count,
            notice=self.notice,
        )

    # === Intents ===

    async def capture(self, source: CaptureSource) -> PipelineRun:
        """
        Run the pipeline from the Capture screen.

        Moves to Results only when the run is Done with a result. On a
        failed run the screen stays on Capture with the error as notice;
        a result that could not be saved is kept as ``unsaved_run``.

        Raises:
            PipelineBusy: If a run is already in flight
            ScreenTransitionError: If not on the Capture screen
        """
        self._require(ScreenState.CAPTURE, intent="capture")
        self.notice = None
        self.unsaved_run = None

        run = await self.pipeline.run(source)

        if run.status is RunStatus.DONE and run.result:
            self.held_run = run
            self._enter(ScreenState.RESULTS)
        else:
            self.notice = run.error.message if run.error else "Identification failed"
            if isinstance(run.error, PersistenceError) and run.result:
                self.unsaved_run = run
        return run

    async def show_history(self) -> list[HistoryRecord]:
        """Switch to History from any screen and reload the log."""
        self._require(*ScreenState, intent="show_history")
        self.notice = None
        try:
            records, total = await asyncio.to_thread(self._load_history)
        except StorageError as e:
            logger.error(f"Load history error: {e.message}")
            self.notice = e.message
        else:
            self.history, self.history_count = records, total
        self._enter(ScreenState.HISTORY)
        return list(self.history)

    def show_results(self) -> None:
        """Return to Results from History while a result is still held."""
        self._require(ScreenState.HISTORY, intent="show_results")
        if not self.results_available:
            raise ScreenTransitionError("No identification result to show")
        self._enter(ScreenState.RESULTS)

    def identify_another(self) -> None:
        """Leave Results for Capture and drop the held result."""
        self._require(ScreenState.RESULTS, intent="identify_another")
        self._reset_to_capture()

    def new_scan(self) -> None:
        """Leave History for Capture."""
        self._require(ScreenState.HISTORY, intent="new_scan")
        self._reset_to_capture()

    async def clear_history(self) -> None:
        """
        Purge the whole log from the History screen.

        The cached history is only cleared after the store confirms.

        Raises:
            StorageWriteError: If the purge failed; history is unchanged
        """
        self._require(ScreenState.HISTORY, intent="clear_history")
        try:
            await asyncio.to_thread(self.record_store.purge_all)
        except StorageWriteError as e:
            self.notice = e.message
            raise
        self.history = []
        self.history_count = 0
        self.notice = "History cleared"

    # === Helpers ===

    def _load_history(self) -> tuple[list[HistoryRecord], int]:
        return self.record_store.list_recent(self.history_limit), self.record_store.count()

    def _require(self, *states: ScreenState, intent: str) -> None:
        if self._state is None:
            raise ScreenTransitionError("App is not ready")
        if self.pipeline.busy:
            raise PipelineBusy()
        if self._state not in states:
            raise ScreenTransitionError(
                f"Cannot {intent.replace('_', ' ')} from the {self._state.value} screen"
            )

    def _reset_to_capture(self) -> None:
        self.held_run = None
        self.unsaved_run = None
        self.notice = None
        self._enter(ScreenState.CAPTURE)

    def _enter(self, state: ScreenState) -> None:
        if state is not self._state:
            previous = self._state.value if self._state else "none"
            logger.info(f"Screen: {previous} -> {state.value}")
        self._state = state
