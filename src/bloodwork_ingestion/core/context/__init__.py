from .enums import ResultStatus, UploadStatus, GuardState
from .lab_result import RawExtractionRecord, NormalizedLabResult, ProcessedFileMarker
from .upload_task import SelectedFile, UploadTask
