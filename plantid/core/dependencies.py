"""
FastAPI dependency injection.

Builds the core components once per application and hands them to
routes, so tests can run an app against their own settings and store.
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from plantid.capture.permission import CapturePermission, StaticCapturePermission
from plantid.core.config import Settings, get_settings
from plantid.core.errors import ScreenTransitionError
from plantid.ml.base import BaseSpeciesClassifier
from plantid.ml.species_classifier import SimulatedSpeciesClassifier
from plantid.services.identification_pipeline import IdentificationPipeline
from plantid.services.initialization import InitializationSequencer
from plantid.services.screen_state import ScreenStateMachine
from plantid.storage.base import RecordStore
from plantid.storage.sqlite_store import SQLiteRecordStore


@dataclass
class AppContainer:
    """Core components of one running application."""
    settings: Settings
    record_store: RecordStore
    classifier: BaseSpeciesClassifier
    permission: CapturePermission
    pipeline: IdentificationPipeline
    sequencer: InitializationSequencer
    screens: ScreenStateMachine


def build_container(
    settings: Optional[Settings] = None,
    record_store: Optional[RecordStore] = None,
    classifier: Optional[BaseSpeciesClassifier] = None,
    permission: Optional[CapturePermission] = None,
) -> AppContainer:
    """
    Wire the core components.

    Components can be injected for testing or replaced with
    alternative implementations.
    """
    settings = settings or get_settings()
    record_store = record_store or SQLiteRecordStore(settings.database_path)
    classifier = classifier or SimulatedSpeciesClassifier(
        top_k=settings.top_k,
        seed=settings.classifier_seed,
        load_delay_seconds=settings.model_load_delay_seconds,
    )
    permission = permission or StaticCapturePermission(settings.capture_permission_granted)

    pipeline = IdentificationPipeline(
        classifier,
        record_store,
        classification_timeout=settings.classification_timeout_seconds,
    )
    sequencer = InitializationSequencer(
        permission,
        record_store,
        classifier,
        model_load_timeout=settings.model_load_timeout_seconds,
    )
    screens = ScreenStateMachine(pipeline, record_store, history_limit=settings.history_limit)

    return AppContainer(
        settings=settings,
        record_store=record_store,
        classifier=classifier,
        permission=permission,
        pipeline=pipeline,
        sequencer=sequencer,
        screens=screens,
    )


def get_container(request: Request) -> AppContainer:
    """Get the container attached to the running app."""
    return request.app.state.container


def get_record_store(request: Request) -> RecordStore:
    return get_container(request).record_store


def get_screens(request: Request) -> ScreenStateMachine:
    """
    Get the screen model, refusing every intent until startup succeeded.

    Raises:
        InitializationError: If startup failed
        ScreenTransitionError: If startup has not run yet
    """
    container = get_container(request)
    report = container.sequencer.report
    if report is None:
        raise ScreenTransitionError("App is still starting")
    report.raise_for_status()
    return container.screens


__all__ = [
    "AppContainer",
    "build_container",
    "get_container",
    "get_record_store",
    "get_screens",
]
