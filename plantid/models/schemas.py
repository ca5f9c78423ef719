"""
Pydantic schemas for the presentation API.

These schemas are the only view of core state the rendering layer gets:
screen snapshots, runs, predictions and history records, plus the
intents it can send back.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from plantid.models.domain import HistoryRecord, Prediction
from plantid.models.enums import (
    AcquisitionSource,
    ConfidenceLevel,
    RunStatus,
    ScreenState,
)


def format_confidence(confidence: float) -> str:
    """Render a confidence as a percentage with one decimal, e.g. '91.0%'."""
    return f"{confidence * 100:.1f}%"


# === Request Schemas ===

class CaptureRequest(BaseModel):
    """
    Camera frame for identification.

    Attributes:
        image: Base64-encoded image data (JPEG, PNG), data URLs accepted
    """
    image: str = Field(
        ...,
        min_length=1,
        description="Base64-encoded camera frame"
    )


class PickRequest(BaseModel):
    """Gallery pick, either uploaded inline or addressed by path."""
    image: Optional[str] = Field(
        default=None,
        min_length=1,
        description="Base64-encoded gallery image"
    )
    path: Optional[str] = Field(
        default=None,
        min_length=1,
        description="Image path inside the configured gallery directory"
    )

    @model_validator(mode="after")
    def exactly_one_source(self) -> "PickRequest":
        if (self.image is None) == (self.path is None):
            raise ValueError("Provide exactly one of 'image' or 'path'")
        return self


# === Result Schemas ===

class PredictionOut(BaseModel):
    """Single ranked prediction."""
    species_label: str = Field(..., description="Predicted species")
    confidence: float = Field(
        ...,
        ge=0.0,
        le=1.0,
        description="Model confidence score (0-1)"
    )
    confidence_percent: str = Field(..., description="Confidence as displayed, e.g. '91.0%'")
    confidence_level: ConfidenceLevel

    @classmethod
    def from_prediction(cls, prediction: Prediction) -> "PredictionOut":
        return cls(
            species_label=prediction.species_label,
            confidence=prediction.confidence,
            confidence_percent=format_confidence(prediction.confidence),
            confidence_level=ConfidenceLevel.from_score(prediction.confidence),
        )


class HistoryRecordOut(BaseModel):
    """Persisted identification."""
    id: int
    species_label: str
    confidence: float = Field(..., ge=0.0, le=1.0)
    confidence_percent: str
    created_at: datetime

    @classmethod
    def from_record(cls, record: HistoryRecord) -> "HistoryRecordOut":
        return cls(
            id=record.id,
            species_label=record.species_label,
            confidence=record.confidence,
            confidence_percent=format_confidence(record.confidence),
            created_at=record.created_at,
        )


class RunErrorOut(BaseModel):
    """Why a run failed."""
    error: str
    message: str


class RunOut(BaseModel):
    """
    Pipeline run as shown to the user.

    ``persisted`` is False when the result was classified but could not
    be saved to history.
    """
    run_id: str
    source: AcquisitionSource
    status: RunStatus
    image_uri: Optional[str] = None
    image_size: Optional[tuple[int, int]] = None
    top_prediction: Optional[PredictionOut] = None
    predictions: Optional[list[PredictionOut]] = None
    persisted: bool = False
    record_id: Optional[int] = None
    error: Optional[RunErrorOut] = None
    metadata: Optional[dict] = Field(
        default=None,
        description="Timing breakdown in milliseconds"
    )

    @classmethod
    def from_run(cls, run) -> "RunOut":
        predictions = (
            [PredictionOut.from_prediction(p) for p in run.result] if run.result else None
        )
        return cls(
            run_id=run.run_id,
            source=run.source,
            status=run.status,
            image_uri=run.image.uri if run.image else None,
            image_size=run.image.size if run.image else None,
            top_prediction=predictions[0] if predictions else None,
            predictions=predictions,
            persisted=run.persisted,
            record_id=run.record.id if run.record else None,
            error=RunErrorOut(error=run.error.code, message=run.error.message) if run.error else None,
            metadata={
                "processing_time_ms": round(run.metrics.total_time_ms, 2),
                "timing_breakdown": {
                    "capture": round(run.metrics.capture_time_ms, 2),
                    "classification": round(run.metrics.classification_time_ms, 2),
                    "persistence": round(run.metrics.persistence_time_ms, 2),
                },
            },
        )


# === Screen Schemas ===

class ScreenResponse(BaseModel):
    """Screen snapshot for the rendering layer."""
    state: ScreenState
    results_available: bool = Field(
        ...,
        description="Whether the Results screen can be opened"
    )
    busy: bool = Field(..., description="Whether an identification is in flight")
    active_status: Optional[RunStatus] = None
    run: Optional[RunOut] = Field(
        default=None,
        description="Held result shown on the Results screen"
    )
    unsaved_run: Optional[RunOut] = Field(
        default=None,
        description="Result classified but not saved, shown in place on Capture"
    )
    history: list[HistoryRecordOut] = Field(default_factory=list)
    history_count: int = 0
    notice: Optional[str] = Field(default=None, description="User-facing message")

    @classmethod
    def from_snapshot(cls, snapshot) -> "ScreenResponse":
        return cls(
            state=snapshot.state,
            results_available=snapshot.results_available,
            busy=snapshot.busy,
            active_status=snapshot.active_status,
            run=RunOut.from_run(snapshot.run) if snapshot.run else None,
            unsaved_run=RunOut.from_run(snapshot.unsaved_run) if snapshot.unsaved_run else None,
            history=[HistoryRecordOut.from_record(r) for r in snapshot.history],
            history_count=snapshot.history_count,
            notice=snapshot.notice,
        )


class HistoryResponse(BaseModel):
    """Recent identifications, newest first."""
    records: list[HistoryRecordOut]
    count: int = Field(..., description="Total number of stored identifications")


# === Error Schemas ===

class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str = Field(..., description="Error type")
    message: str = Field(..., description="Human-readable error message")
    details: Optional[dict] = Field(default=None, description="Additional error details")
