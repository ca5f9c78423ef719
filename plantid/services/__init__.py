# Services module
from plantid.services.identification_pipeline import IdentificationPipeline, PipelineRun
from plantid.services.initialization import InitializationReport, InitializationSequencer
from plantid.services.screen_state import ScreenSnapshot, ScreenStateMachine

__all__ = [
    "IdentificationPipeline",
    "PipelineRun",
    "InitializationReport",
    "InitializationSequencer",
    "ScreenSnapshot",
    "ScreenStateMachine",
]
