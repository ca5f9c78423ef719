"""
Shared fixtures and test doubles for the identification core.
"""

import asyncio
import base64
import io
import threading
import time
from typing import Optional

import pytest
from PIL import Image

from plantid.capture.base import CaptureSource
from plantid.core.errors import StorageWriteError
from plantid.ml.base import BaseSpeciesClassifier, ModelInfo
from plantid.models.domain import ImageHandle, Prediction
from plantid.models.enums import AcquisitionSource, RunStatus
from plantid.storage.memory_store import InMemoryRecordStore


DEFAULT_PREDICTIONS = [
    Prediction("Species_4", 0.91),
    Prediction("Species_5", 0.05),
    Prediction("Species_6", 0.02),
]


class StubSource(CaptureSource):
    """Capture source returning a fixed handle, or raising a given error."""

    def __init__(self, source=AcquisitionSource.CAMERA, error: Optional[Exception] = None):
        self.source = source
        self.error = error
        self.calls = 0

    async def acquire_image(self) -> ImageHandle:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return ImageHandle(
            uri=f"memory://{self.source.value}/stub",
            source=self.source,
            width=224,
            height=224,
            format="JPEG",
        )


class StaticClassifier(BaseSpeciesClassifier):
    """
    Classifier returning fixed predictions.

    ``gate`` blocks classification until set; ``delay`` sleeps first;
    ``error`` is raised instead of returning.
    """

    def __init__(
        self,
        predictions: Optional[list[Prediction]] = None,
        error: Optional[Exception] = None,
        gate: Optional[threading.Event] = None,
        delay: float = 0.0,
        load_error: Optional[Exception] = None,
        top_k: int = 3,
    ):
        super().__init__(top_k=top_k)
        self.predictions = list(predictions or DEFAULT_PREDICTIONS)
        self.error = error
        self.gate = gate
        self.delay = delay
        self.load_error = load_error
        self.calls = 0
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()

    def load_model(self) -> None:
        if self.load_error is not None:
            raise self.load_error
        self._model_info = ModelInfo(
            name="static",
            version="test",
            architecture="fixed",
            num_classes=len(self.predictions),
            class_names=[p.species_label for p in self.predictions],
            top_k=self.top_k,
        )

    def _predict(self, image: ImageHandle) -> list[Prediction]:
        with self._lock:
            self.calls += 1
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.gate is not None:
                self.gate.wait(timeout=5)
            if self.delay:
                time.sleep(self.delay)
            if self.error is not None:
                raise self.error
            return self.predictions
        finally:
            with self._lock:
                self.in_flight -= 1

    def get_model_info(self) -> ModelInfo:
        return self._model_info


class FlakyRecordStore(InMemoryRecordStore):
    """In-memory store whose writes can be made to fail."""

    def __init__(self, fail_append: bool = False, fail_purge: bool = False, fail_schema: bool = False):
        super().__init__()
        self.fail_append = fail_append
        self.fail_purge = fail_purge
        self.fail_schema = fail_schema
        self.schema_calls = 0

    def ensure_schema(self) -> None:
        self.schema_calls += 1
        if self.fail_schema:
            raise StorageWriteError("disk is read-only")
        super().ensure_schema()

    def append(self, species_label: str, confidence: float):
        if self.fail_append:
            raise StorageWriteError("disk full")
        return super().append(species_label, confidence)

    def purge_all(self) -> None:
        if self.fail_purge:
            raise StorageWriteError("database is locked")
        super().purge_all()


async def wait_for_status(pipeline, status: RunStatus, timeout: float = 2.0) -> None:
    """Poll until the pipeline's active run reaches ``status``."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        run = pipeline.active_run
        if run is not None and run.status is status:
            return
        await asyncio.sleep(0.01)
    raise AssertionError(f"Pipeline never reached {status.value}")


async def wait_until_idle(pipeline, timeout: float = 2.0) -> None:
    """Poll until the pipeline accepts a new run."""
    deadline = time.monotonic() + timeout
    while pipeline.busy:
        if time.monotonic() > deadline:
            raise AssertionError("Pipeline never became idle")
        await asyncio.sleep(0.01)


def encode_image(color=(34, 139, 34), size=(224, 224), fmt="JPEG") -> str:
    img = Image.new("RGB", size, color=color)
    buffer = io.BytesIO()
    img.save(buffer, format=fmt)
    return base64.b64encode(buffer.getvalue()).decode("utf-8")


@pytest.fixture
def sample_image_base64():
    """Generate a sample test image as base64."""
    # Create a simple green image (simulating a leaf)
    img = Image.new('RGB', (224, 224), color=(34, 139, 34))  # Forest green

    # Add some variation
    pixels = img.load()
    for i in range(50, 150):
        for j in range(50, 150):
            pixels[i, j] = (50, 150, 50)

    buffer = io.BytesIO()
    img.save(buffer, format='JPEG')
    return base64.b64encode(buffer.getvalue()).decode('utf-8')


@pytest.fixture
def store():
    """Ready in-memory record store."""
    store = FlakyRecordStore()
    store.ensure_schema()
    return store


@pytest.fixture
def classifier():
    """Loaded classifier with fixed predictions."""
    classifier = StaticClassifier()
    classifier.ensure_loaded()
    return classifier
