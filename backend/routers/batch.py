"""
Batch queue endpoints: published state, queue commands and lifecycle control.
"""

import logging
from pathlib import Path
from typing import List, Optional

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel

from engine.batch_controller import BatchController, BatchSettingsUpdate
from engine.ingestion import SubmissionReport
from engine.queue_store import ReorderDirection
from models.transcription import ExportFormat
from utils.exceptions import ConflictError

logger = logging.getLogger(__name__)
router = APIRouter()


def get_controller() -> BatchController:
    """Dependency returning the process-wide batch controller."""
    return BatchController.get_instance()


class AddFilesRequest(BaseModel):
    """Local media paths to queue."""
    paths: List[str]


class AddUrlRequest(BaseModel):
    url: str


class MoveRequest(BaseModel):
    direction: ReorderDirection


class ExportRequest(BaseModel):
    format: ExportFormat = ExportFormat.TXT
    directory: Optional[str] = None


def report_to_dict(report: SubmissionReport) -> dict:
    return {
        "added": [item.to_dict() for item in report.added],
        "rejected": [{"source": source, "reason": reason} for source, reason in report.rejected],
        "skipped_count": report.skipped_count,
    }


def command_response(controller: BatchController, changed: bool) -> dict:
    return {"changed": changed, "status": controller.status().to_dict()}


# --- Published state ---

@router.get("")
async def get_status(controller: BatchController = Depends(get_controller)):
    """Current batch status: items, counts, progress, ETA and status text."""
    return controller.status().to_dict()


@router.get("/items/{item_id}")
async def get_item(item_id: str, controller: BatchController = Depends(get_controller)):
    """A single queue item, including its transcription once completed."""
    return controller.get_item(item_id).to_dict(include_result=True)


# --- Ingestion ---

@router.post("/files")
async def add_files(request: AddFilesRequest, controller: BatchController = Depends(get_controller)):
    """
    Queue local media files.

    Unsupported or missing files are skipped and reported, not raised.
    """
    report = controller.add_files(request.paths)
    return report_to_dict(report)


@router.post("/url")
async def add_url(request: AddUrlRequest, controller: BatchController = Depends(get_controller)):
    """Queue a single video URL from a supported platform."""
    logger.info(f"URL submitted: {request.url}")
    item = controller.add_url(request.url)
    return item.to_dict()


# --- Queue commands ---

@router.delete("/items/{item_id}")
async def remove_item(item_id: str, controller: BatchController = Depends(get_controller)):
    if not controller.remove_item(item_id):
        raise ConflictError("Item is being processed; cancel the batch before removing it")
    return {"removed": True}


@router.post("/items/{item_id}/move")
async def move_item(item_id: str, request: MoveRequest, controller: BatchController = Depends(get_controller)):
    """Reorder a pending item. Non-pending items and edge moves are no-ops."""
    moves = {
        ReorderDirection.UP: controller.move_up,
        ReorderDirection.DOWN: controller.move_down,
        ReorderDirection.TOP: controller.move_to_top,
        ReorderDirection.BOTTOM: controller.move_to_bottom,
    }
    changed = moves[request.direction](item_id)
    return command_response(controller, changed)


@router.post("/items/{item_id}/retry")
async def retry_item(item_id: str, controller: BatchController = Depends(get_controller)):
    return command_response(controller, controller.retry_item(item_id))


@router.post("/items/{item_id}/select")
async def select_item(item_id: str, controller: BatchController = Depends(get_controller)):
    controller.select_item(item_id)
    return {"selected_item_id": item_id}


@router.post("/deselect")
async def deselect_item(controller: BatchController = Depends(get_controller)):
    controller.deselect_item()
    return {"selected_item_id": None}


@router.post("/retry-failed")
async def retry_all_failed(controller: BatchController = Depends(get_controller)):
    return {"requeued": controller.retry_all_failed()}


@router.post("/clear")
async def clear_queue(controller: BatchController = Depends(get_controller)):
    return {"removed": controller.clear_queue()}


@router.post("/remove-completed")
async def remove_completed(controller: BatchController = Depends(get_controller)):
    return {"removed": controller.remove_completed()}


@router.post("/remove-failed")
async def remove_failed(controller: BatchController = Depends(get_controller)):
    return {"removed": controller.remove_failed()}


# --- Lifecycle ---

@router.post("/start")
async def start(controller: BatchController = Depends(get_controller)):
    return command_response(controller, controller.start())


@router.post("/pause")
async def pause(controller: BatchController = Depends(get_controller)):
    return command_response(controller, controller.pause())


@router.post("/resume")
async def resume(controller: BatchController = Depends(get_controller)):
    return command_response(controller, controller.resume())


@router.post("/cancel")
async def cancel(controller: BatchController = Depends(get_controller)):
    return command_response(controller, controller.cancel())


@router.post("/reset")
async def reset(controller: BatchController = Depends(get_controller)):
    return command_response(controller, controller.reset_session())


# --- Settings ---

@router.get("/settings")
async def get_settings(controller: BatchController = Depends(get_controller)):
    return controller.session.settings_dict()


@router.put("/settings")
async def update_settings(update: BatchSettingsUpdate, controller: BatchController = Depends(get_controller)):
    """Partial update; applies from the next scheduling decision."""
    return controller.configure(update)


# --- Export ---

@router.get("/items/{item_id}/export")
async def export_item(
    item_id: str,
    format: ExportFormat = ExportFormat.TXT,
    controller: BatchController = Depends(get_controller),
):
    """Download one completed transcript in the requested format."""
    item = controller.get_item(item_id)
    content = controller.export_item(item_id, format)
    filename = f"{Path(item.source.display_name).stem or item_id}_transcript.{format.file_extension}"
    return Response(
        content=content,
        media_type=format.mime_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/export")
async def export_completed(request: ExportRequest, controller: BatchController = Depends(get_controller)):
    """Write every completed transcript to a directory (default: the export dir)."""
    paths = await controller.export_completed(
        request.format,
        Path(request.directory) if request.directory else None,
    )
    return {"exported": [str(p) for p in paths]}
