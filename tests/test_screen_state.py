"""
Tests for ScreenStateMachine.

Tests cover:
- Activation gating
- Capture → Results on success, staying on Capture on failure
- History, Results and Capture transitions
- Clearing history, including failures
- Intents refused while a run is in flight
"""

import asyncio
import gc
import threading
import weakref

import pytest

from plantid.core.errors import (
    ClassifierError,
    InitializationError,
    PipelineBusy,
    ScreenTransitionError,
    StorageReadError,
    StorageWriteError,
)
from plantid.models.domain import Prediction
from plantid.models.enums import InitStep, RunStatus, ScreenState
from plantid.services.identification_pipeline import IdentificationPipeline
from plantid.services.initialization import InitializationReport
from plantid.services.screen_state import ScreenStateMachine

from conftest import StaticClassifier, StubSource, wait_for_status


READY = InitializationReport(ready=True, completed_steps=list(InitStep))


def make_screens(classifier, store) -> ScreenStateMachine:
    screens = ScreenStateMachine(IdentificationPipeline(classifier, store), store)
    screens.activate(READY)
    return screens


class TestActivation:

    def test_not_active_before_ready(self, classifier, store):
        screens = ScreenStateMachine(IdentificationPipeline(classifier, store), store)

        assert screens.state is None
        with pytest.raises(ScreenTransitionError):
            screens.snapshot()

    @pytest.mark.asyncio
    async def test_intents_refused_before_ready(self, classifier, store):
        screens = ScreenStateMachine(IdentificationPipeline(classifier, store), store)

        with pytest.raises(ScreenTransitionError):
            await screens.capture(StubSource())
        with pytest.raises(ScreenTransitionError):
            await screens.show_history()

    def test_failed_report_does_not_activate(self, classifier, store):
        screens = ScreenStateMachine(IdentificationPipeline(classifier, store), store)
        report = InitializationReport(
            ready=False,
            failed_step=InitStep.CAPTURE_PERMISSION,
            error=InitializationError(InitStep.CAPTURE_PERMISSION, "Camera permission is required"),
        )

        with pytest.raises(InitializationError):
            screens.activate(report)
        assert screens.state is None

    def test_initial_state_is_capture(self, classifier, store):
        screens = make_screens(classifier, store)

        snapshot = screens.snapshot()
        assert snapshot.state is ScreenState.CAPTURE
        assert not snapshot.results_available
        assert not snapshot.busy


class TestCapture:

    @pytest.mark.asyncio
    async def test_done_moves_to_results(self, classifier, store):
        screens = make_screens(classifier, store)

        run = await screens.capture(StubSource())

        snapshot = screens.snapshot()
        assert run.status is RunStatus.DONE
        assert snapshot.state is ScreenState.RESULTS
        assert snapshot.results_available
        assert snapshot.run is run
        assert snapshot.notice is None

    @pytest.mark.asyncio
    async def test_classification_failure_stays_on_capture(self, store):
        """Failed(ClassificationError) keeps Capture and leaves Results unreachable."""
        classifier = StaticClassifier(error=ClassifierError("model crashed"))
        classifier.ensure_loaded()
        screens = make_screens(classifier, store)

        run = await screens.capture(StubSource())

        snapshot = screens.snapshot()
        assert run.status is RunStatus.FAILED
        assert snapshot.state is ScreenState.CAPTURE
        assert not snapshot.results_available
        assert snapshot.run is None
        assert snapshot.notice == run.error.message

        await screens.show_history()
        with pytest.raises(ScreenTransitionError):
            screens.show_results()

    @pytest.mark.asyncio
    async def test_persistence_failure_shows_unsaved_result_in_place(self, classifier, store):
        store.fail_append = True
        screens = make_screens(classifier, store)

        run = await screens.capture(StubSource())

        snapshot = screens.snapshot()
        assert snapshot.state is ScreenState.CAPTURE
        assert snapshot.unsaved_run is run
        assert snapshot.unsaved_run.top_prediction.species_label == "Species_4"
        assert "not saved" in snapshot.notice
        assert not snapshot.results_available

    @pytest.mark.asyncio
    async def test_capture_only_from_capture_screen(self, classifier, store):
        screens = make_screens(classifier, store)
        await screens.capture(StubSource())

        with pytest.raises(ScreenTransitionError):
            await screens.capture(StubSource())

    @pytest.mark.asyncio
    async def test_intents_refused_while_run_in_flight(self, store):
        gate = threading.Event()
        classifier = StaticClassifier(gate=gate)
        classifier.ensure_loaded()
        screens = make_screens(classifier, store)

        task = asyncio.create_task(screens.capture(StubSource()))
        try:
            await wait_for_status(screens.pipeline, RunStatus.CLASSIFYING)

            assert screens.snapshot().busy
            assert screens.snapshot().active_status is RunStatus.CLASSIFYING
            with pytest.raises(PipelineBusy):
                await screens.capture(StubSource())
            with pytest.raises(PipelineBusy):
                await screens.show_history()
            assert screens.state is ScreenState.CAPTURE
        finally:
            gate.set()

        run = await task
        assert run.status is RunStatus.DONE
        assert screens.state is ScreenState.RESULTS


class TestNavigation:

    @pytest.mark.asyncio
    async def test_identify_another_clears_result_but_keeps_record(self, store):
        """Results with a 0.9 top prediction → identify another → Capture; record still listed."""
        classifier = StaticClassifier(predictions=[
            Prediction("Species_7", 0.9),
            Prediction("Species_8", 0.06),
            Prediction("Species_9", 0.02),
        ])
        classifier.ensure_loaded()
        screens = make_screens(classifier, store)
        run = await screens.capture(StubSource())
        assert screens.snapshot().run.top_prediction.confidence == pytest.approx(0.9)

        screens.identify_another()

        snapshot = screens.snapshot()
        assert snapshot.state is ScreenState.CAPTURE
        assert snapshot.run is None
        assert not snapshot.results_available
        recent = store.list_recent(20)
        assert recent[0].id == run.record.id
        assert recent[0].confidence == pytest.approx(0.9)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("leave", ["identify_another", "new_scan"])
    async def test_leaving_for_capture_releases_the_run(self, classifier, store, leave):
        screens = make_screens(classifier, store)
        run = await screens.capture(StubSource())
        if leave == "new_scan":
            await screens.show_history()
        released = weakref.ref(run)
        del run

        getattr(screens, leave)()
        gc.collect()

        assert released() is None
        assert store.count() == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("reach", ["capture", "results", "history"])
    async def test_history_reachable_from_every_state(self, classifier, store, reach):
        screens = make_screens(classifier, store)
        if reach in ("results", "history"):
            await screens.capture(StubSource())
        if reach == "history":
            await screens.show_history()

        records = await screens.show_history()

        assert screens.state is ScreenState.HISTORY
        assert len(records) == (0 if reach == "capture" else 1)

    @pytest.mark.asyncio
    async def test_history_lists_newest_first(self, store):
        classifier = StaticClassifier(predictions=[Prediction("Species_4", 0.91)])
        classifier.ensure_loaded()
        screens = make_screens(classifier, store)
        await screens.capture(StubSource())
        screens.identify_another()
        classifier.predictions = [Prediction("Species_9", 0.88)]
        await screens.capture(StubSource())

        await screens.show_history()

        snapshot = screens.snapshot()
        assert [r.species_label for r in snapshot.history] == ["Species_9", "Species_4"]
        assert snapshot.history_count == 2

    @pytest.mark.asyncio
    async def test_results_reachable_from_history_while_held(self, classifier, store):
        screens = make_screens(classifier, store)
        run = await screens.capture(StubSource())
        await screens.show_history()

        screens.show_results()

        assert screens.state is ScreenState.RESULTS
        assert screens.snapshot().run is run

    @pytest.mark.asyncio
    async def test_new_scan_returns_to_capture(self, classifier, store):
        screens = make_screens(classifier, store)
        await screens.capture(StubSource())
        await screens.show_history()

        screens.new_scan()

        assert screens.state is ScreenState.CAPTURE
        assert not screens.results_available

    def test_identify_another_only_from_results(self, classifier, store):
        screens = make_screens(classifier, store)
        with pytest.raises(ScreenTransitionError):
            screens.identify_another()

    def test_new_scan_only_from_history(self, classifier, store):
        screens = make_screens(classifier, store)
        with pytest.raises(ScreenTransitionError):
            screens.new_scan()

    @pytest.mark.asyncio
    async def test_history_read_failure_keeps_previous_history(self, classifier, store, monkeypatch):
        screens = make_screens(classifier, store)
        await screens.capture(StubSource())
        await screens.show_history()
        screens.new_scan()

        def broken(limit=20):
            raise StorageReadError("database is locked")

        monkeypatch.setattr(store, "list_recent", broken)
        records = await screens.show_history()

        assert screens.state is ScreenState.HISTORY
        assert len(records) == 1
        assert screens.snapshot().notice == "database is locked"


class TestClearHistory:

    @pytest.mark.asyncio
    async def test_clear_history(self, classifier, store):
        screens = make_screens(classifier, store)
        await screens.capture(StubSource())
        await screens.show_history()

        await screens.clear_history()

        snapshot = screens.snapshot()
        assert snapshot.history == []
        assert snapshot.history_count == 0
        assert store.list_recent(20) == []

    @pytest.mark.asyncio
    async def test_failed_clear_leaves_history_unchanged(self, classifier, store):
        screens = make_screens(classifier, store)
        await screens.capture(StubSource())
        await screens.show_history()
        store.fail_purge = True

        with pytest.raises(StorageWriteError):
            await screens.clear_history()

        snapshot = screens.snapshot()
        assert len(snapshot.history) == 1
        assert snapshot.history_count == 1
        assert store.count() == 1
        assert snapshot.notice == "database is locked"

    @pytest.mark.asyncio
    async def test_clear_only_from_history(self, classifier, store):
        screens = make_screens(classifier, store)
        with pytest.raises(ScreenTransitionError):
            await screens.clear_history()
