"""Caller side of processing: upload flow and the retry driver."""

from docingest.client.retry_driver import (
    FINAL_FAILURE_MESSAGES,
    ProcessingHandle,
    ProcessingRetryDriver,
)
from docingest.client.uploader import FileUploadService, sanitize_filename, storage_path

__all__ = [
    "FINAL_FAILURE_MESSAGES",
    "FileUploadService",
    "ProcessingHandle",
    "ProcessingRetryDriver",
    "sanitize_filename",
    "storage_path",
]
