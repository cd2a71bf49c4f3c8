"""Side-effecting handlers for verified data-subject requests."""

from consent_api.models.data_request import DataRequestType
from consent_api.services.processors.base import ProcessorResult, RequestProcessor
from consent_api.services.processors.deletion import DeletionProcessor
from consent_api.services.processors.export import ExportProcessor, PortabilityProcessor
from consent_api.services.processors.rectify import RectifyProcessor
from consent_api.services.processors.restrict import RestrictProcessor

PROCESSORS: dict[DataRequestType, type[RequestProcessor]] = {
    DataRequestType.EXPORT: ExportProcessor,
    DataRequestType.DELETE: DeletionProcessor,
    DataRequestType.RECTIFY: RectifyProcessor,
    DataRequestType.RESTRICT: RestrictProcessor,
    DataRequestType.PORTABILITY: PortabilityProcessor,
}

__all__ = [
    "PROCESSORS",
    "DeletionProcessor",
    "ExportProcessor",
    "PortabilityProcessor",
    "ProcessorResult",
    "RectifyProcessor",
    "RequestProcessor",
    "RestrictProcessor",
]
