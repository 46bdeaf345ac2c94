"""
Services package.
"""

from services.fetcher import MediaFetcher
from services.export_service import ExportService
from services.file_service import FileService
from services.history_service import HistoryService

__all__ = ["MediaFetcher", "ExportService", "FileService", "HistoryService"]
