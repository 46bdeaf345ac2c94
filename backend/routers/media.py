"""
Media upload and URL lookup endpoints.
"""

import logging

from fastapi import APIRouter, UploadFile, File, Depends
from pydantic import BaseModel

from engine.batch_controller import BatchController
from routers.batch import get_controller, report_to_dict
from services.fetcher import MediaFetcher
from services.file_service import FileService

logger = logging.getLogger(__name__)
router = APIRouter()
file_service = FileService()
media_fetcher = MediaFetcher()


class UrlInfoRequest(BaseModel):
    """Request body for getting video info."""
    url: str


@router.post("/upload")
async def upload_file(
    file: UploadFile = File(...),
    controller: BatchController = Depends(get_controller),
):
    """
    Upload a media file and add it to the batch queue.

    Accepts: mp3, wav, m4a, aac, flac, ogg, mp4, mov, m4v, webm, mkv
    Max size: 500MB (configurable)
    """
    # Validate before touching the disk
    file_service.validate_file(file.filename, file.size or 0)

    stored_path = await file_service.save_upload(file, file.filename)
    report = controller.add_files([stored_path])
    if not report.added:
        file_service.delete_file(stored_path)

    data = report_to_dict(report)
    data["original_filename"] = file.filename
    return data


@router.post("/info")
def get_url_info(request: UrlInfoRequest):
    """
    Get video metadata without downloading.

    Returns: title, duration, thumbnail, uploader, platform
    """
    logger.info(f"Video info request: {request.url}")
    return media_fetcher.get_info(request.url)
