# Data models module
from plantid.models.domain import HistoryRecord, ImageHandle, Prediction
from plantid.models.schemas import (
    CaptureRequest,
    PickRequest,
    PredictionOut,
    HistoryRecordOut,
    RunOut,
    ScreenResponse,
    HistoryResponse,
    ErrorResponse,
)
from plantid.models.enums import (
    AcquisitionSource,
    ConfidenceLevel,
    InitStep,
    RunStatus,
    ScreenState,
)

__all__ = [
    "HistoryRecord",
    "ImageHandle",
    "Prediction",
    "CaptureRequest",
    "PickRequest",
    "PredictionOut",
    "HistoryRecordOut",
    "RunOut",
    "ScreenResponse",
    "HistoryResponse",
    "ErrorResponse",
    "AcquisitionSource",
    "ConfidenceLevel",
    "InitStep",
    "RunStatus",
    "ScreenState",
]
