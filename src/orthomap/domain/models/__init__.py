from src.orthomap.domain.models.external_job import ExternalJobCode, ExternalJobStatus
from src.orthomap.domain.models.geo import BoundingBox, LatLng
from src.orthomap.domain.models.input_kind import InputKind
from src.orthomap.domain.models.payloads import InputFile, ProcessingOption
from src.orthomap.domain.models.spectral_index import SPECTRAL_INDICES, SpectralIndex
from src.orthomap.domain.models.task import Task
from src.orthomap.domain.models.task_status import TaskStatus

__all__ = [
    "Task",
    "TaskStatus",
    "InputKind",
    "InputFile",
    "ProcessingOption",
    "BoundingBox",
    "LatLng",
    "ExternalJobCode",
    "ExternalJobStatus",
    "SpectralIndex",
    "SPECTRAL_INDICES",
]
