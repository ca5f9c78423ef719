"""
Tests for IdentificationPipeline.

Tests cover:
- Happy path transitions and top-1 persistence
- Capture / classification / persistence failures
- Busy-guard while a run is in flight
- Classification timeout
"""

import asyncio
import threading

import pytest

from plantid.core.errors import (
    CaptureError,
    ClassificationError,
    ClassifierError,
    InvalidRunTransition,
    PersistenceError,
    PipelineBusy,
)
from plantid.models.domain import Prediction
from plantid.models.enums import AcquisitionSource, RunStatus
from plantid.services.identification_pipeline import IdentificationPipeline, PipelineRun

from conftest import StaticClassifier, StubSource, wait_for_status, wait_until_idle


class TestPipelineRun:
    """Test run lifecycle rules."""

    def test_starts_idle(self):
        run = PipelineRun(source=AcquisitionSource.CAMERA)
        assert run.status is RunStatus.IDLE
        assert run.result is None
        assert not run.is_active

    def test_happy_path_transitions(self):
        run = PipelineRun(source=AcquisitionSource.CAMERA)
        for status in (RunStatus.CAPTURING, RunStatus.CLASSIFYING, RunStatus.PERSISTING, RunStatus.DONE):
            run.advance(status)
        assert run.is_terminal
        assert run.finished_at is not None

    @pytest.mark.parametrize("path", [
        [RunStatus.CAPTURING],
        [RunStatus.CAPTURING, RunStatus.CLASSIFYING],
        [RunStatus.CAPTURING, RunStatus.CLASSIFYING, RunStatus.PERSISTING],
    ])
    def test_failed_reachable_from_every_active_state(self, path):
        run = PipelineRun(source=AcquisitionSource.GALLERY)
        for status in path:
            run.advance(status)
        run.advance(RunStatus.FAILED)
        assert run.status is RunStatus.FAILED

    @pytest.mark.parametrize("start,target", [
        (RunStatus.IDLE, RunStatus.CLASSIFYING),
        (RunStatus.IDLE, RunStatus.FAILED),
        (RunStatus.CAPTURING, RunStatus.PERSISTING),
        (RunStatus.DONE, RunStatus.FAILED),
        (RunStatus.FAILED, RunStatus.CAPTURING),
    ])
    def test_illegal_transitions(self, start, target):
        run = PipelineRun(source=AcquisitionSource.CAMERA, status=start)
        with pytest.raises(InvalidRunTransition):
            run.advance(target)


class TestIdentificationPipeline:
    """Test full pipeline runs."""

    @pytest.fixture
    def pipeline(self, classifier, store):
        return IdentificationPipeline(classifier, store)

    @pytest.mark.asyncio
    async def test_successful_run_persists_top_prediction(self, pipeline, store):
        run = await pipeline.run(StubSource())

        assert run.status is RunStatus.DONE
        assert run.error is None
        assert len(run.result) == 3
        assert run.persisted

        saved = store.list_recent(20)
        assert len(saved) == 1
        assert saved[0].species_label == "Species_4"
        assert saved[0].confidence == pytest.approx(0.91)
        assert run.record.id == saved[0].id

    @pytest.mark.asyncio
    async def test_gallery_and_camera_are_interchangeable(self, pipeline, store):
        camera = await pipeline.run(StubSource(AcquisitionSource.CAMERA))
        gallery = await pipeline.run(StubSource(AcquisitionSource.GALLERY))

        assert camera.status is gallery.status is RunStatus.DONE
        assert gallery.image.source is AcquisitionSource.GALLERY
        assert store.count() == 2

    @pytest.mark.asyncio
    async def test_capture_failure(self, pipeline, classifier, store):
        run = await pipeline.run(StubSource(error=CaptureError("Camera not ready")))

        assert run.status is RunStatus.FAILED
        assert isinstance(run.error, CaptureError)
        assert run.result is None
        assert classifier.calls == 0
        assert store.count() == 0

    @pytest.mark.asyncio
    async def test_unexpected_capture_exception_is_capture_error(self, pipeline):
        run = await pipeline.run(StubSource(error=OSError("device unplugged")))

        assert run.status is RunStatus.FAILED
        assert isinstance(run.error, CaptureError)

    @pytest.mark.asyncio
    async def test_classifier_failure_writes_nothing(self, store):
        classifier = StaticClassifier(error=ClassifierError("model crashed"))
        classifier.ensure_loaded()
        pipeline = IdentificationPipeline(classifier, store)

        run = await pipeline.run(StubSource())

        assert run.status is RunStatus.FAILED
        assert isinstance(run.error, ClassificationError)
        assert run.result is None
        assert store.count() == 0

    @pytest.mark.asyncio
    async def test_unloaded_classifier_is_classification_error(self, store):
        pipeline = IdentificationPipeline(StaticClassifier(), store)

        run = await pipeline.run(StubSource())

        assert run.status is RunStatus.FAILED
        assert isinstance(run.error, ClassificationError)
        assert store.count() == 0

    @pytest.mark.asyncio
    async def test_storage_failure_keeps_result(self, classifier, store):
        """Presentation survives a persistence failure."""
        store.fail_append = True
        pipeline = IdentificationPipeline(classifier, store)

        run = await pipeline.run(StubSource())

        assert run.status is RunStatus.FAILED
        assert isinstance(run.error, PersistenceError)
        assert run.result is not None
        assert run.top_prediction.species_label == "Species_4"
        assert not run.persisted
        assert store.count() == 0

    @pytest.mark.asyncio
    async def test_classification_timeout(self, store):
        classifier = StaticClassifier(delay=0.5)
        classifier.ensure_loaded()
        pipeline = IdentificationPipeline(classifier, store, classification_timeout=0.05)

        run = await pipeline.run(StubSource())

        assert run.status is RunStatus.FAILED
        assert isinstance(run.error, ClassificationError)
        assert "timed out" in run.error.message
        assert store.count() == 0

    @pytest.mark.asyncio
    async def test_timed_out_classification_keeps_pipeline_busy(self, store):
        """A run after a timeout is refused until the abandoned classification returns."""
        classifier = StaticClassifier(delay=0.3)
        classifier.ensure_loaded()
        pipeline = IdentificationPipeline(classifier, store, classification_timeout=0.05)

        first = await pipeline.run(StubSource())
        assert first.status is RunStatus.FAILED
        assert pipeline.busy
        assert pipeline.active_run is None

        refused = StubSource()
        with pytest.raises(PipelineBusy):
            await pipeline.run(refused)
        assert refused.calls == 0

        await wait_until_idle(pipeline)
        classifier.delay = 0.0
        second = await pipeline.run(StubSource())

        assert second.status is RunStatus.DONE
        assert classifier.calls == 2
        assert classifier.max_in_flight == 1
        assert classifier.in_flight == 0

    @pytest.mark.asyncio
    async def test_second_acquisition_while_classifying_is_rejected(self, store):
        """A second acquisition during Classifying gets PipelineBusy; the first run completes."""
        gate = threading.Event()
        classifier = StaticClassifier(gate=gate, predictions=[Prediction("Species_9", 0.88)])
        classifier.ensure_loaded()
        pipeline = IdentificationPipeline(classifier, store)

        first = asyncio.create_task(pipeline.run(StubSource()))
        try:
            await wait_for_status(pipeline, RunStatus.CLASSIFYING)
            assert pipeline.busy

            second_source = StubSource()
            with pytest.raises(PipelineBusy):
                await pipeline.run(second_source)
            assert second_source.calls == 0
        finally:
            gate.set()

        run = await first
        assert run.status is RunStatus.DONE
        assert run.top_prediction == Prediction("Species_9", 0.88)
        assert [r.species_label for r in store.list_recent()] == ["Species_9"]
        assert classifier.calls == 1

    @pytest.mark.asyncio
    async def test_new_run_allowed_after_terminal(self, pipeline):
        failed = await pipeline.run(StubSource(error=CaptureError()))
        done = await pipeline.run(StubSource())

        assert failed.status is RunStatus.FAILED
        assert done.status is RunStatus.DONE
        assert done.run_id != failed.run_id
        assert not pipeline.busy

    @pytest.mark.asyncio
    async def test_metrics_recorded(self, pipeline):
        run = await pipeline.run(StubSource())
        assert run.metrics.total_time_ms >= run.metrics.classification_time_ms >= 0.0
