"""
Session API Endpoints
=====================
Open a converter session, load an image, change output settings, and run
compression or background removal against it.
"""

from fastapi import APIRouter, Depends, File, Response, UploadFile
from pydantic import BaseModel, Field
from typing import Optional

from api.dependencies import get_operations, get_session_store
from services.image_file import ImageFile, OutputFormat
from services.operations import DownloadResult, ImageOperations
from services.session_store import QUALITY_MAX, QUALITY_MIN, Session, SessionStore

router = APIRouter()


class SessionState(BaseModel):
    """Everything the dashboard renders for a session."""
    session_id: str
    image_name: Optional[str] = None
    image_content_type: Optional[str] = None
    preview_url: Optional[str] = None
    output_format: OutputFormat
    quality_level: int
    original_size_kb: float
    optimized_size_kb: Optional[float] = None
    compression_busy: bool
    bg_removal_busy: bool
    bg_removal_progress: int
    transparent_preview: bool


class SettingsUpdate(BaseModel):
    """Partial update of the output settings."""
    output_format: Optional[OutputFormat] = None
    quality_level: Optional[int] = Field(None, ge=QUALITY_MIN, le=QUALITY_MAX)


class OperationResponse(BaseModel):
    """Response from compress / remove-background."""
    success: bool
    filename: str
    download_url: str
    content_type: str
    optimized_size_kb: float
    state: SessionState


def _state(session: Session) -> SessionState:
    return SessionState(**session.snapshot())


def _operation_response(session: Session, result: DownloadResult) -> OperationResponse:
    return OperationResponse(
        success=True,
        filename=result.filename,
        download_url=result.url,
        content_type=result.content_type,
        optimized_size_kb=result.size_kb,
        state=_state(session),
    )


@router.post("/sessions", response_model=SessionState, status_code=201)
async def create_session(store: SessionStore = Depends(get_session_store)):
    """Open a new converter session."""
    return _state(store.create())


@router.get("/sessions/{session_id}", response_model=SessionState)
async def get_session(session_id: str, store: SessionStore = Depends(get_session_store)):
    """Current state; poll this for background-removal progress."""
    return _state(store.get(session_id))


@router.delete("/sessions/{session_id}", status_code=204)
async def close_session(session_id: str, store: SessionStore = Depends(get_session_store)):
    """Close a session and release its previews and downloads."""
    await store.close(session_id)
    return Response(status_code=204)


@router.post("/sessions/{session_id}/image", response_model=SessionState)
async def upload_image(
    session_id: str,
    file: UploadFile = File(...),
    store: SessionStore = Depends(get_session_store),
):
    """Load a user-selected image into the session."""
    session = store.get(session_id)
    data = await file.read()
    image = ImageFile(
        name=file.filename or "image",
        content_type=file.content_type or "",
        data=data,
    )
    await session.load_image(image)
    return _state(session)


@router.patch("/sessions/{session_id}/settings", response_model=SessionState)
async def update_settings(
    session_id: str,
    update: SettingsUpdate,
    store: SessionStore = Depends(get_session_store),
):
    """Change the target format and/or quality level."""
    session = store.get(session_id)
    if update.output_format is not None:
        session.set_output_format(update.output_format)
    if update.quality_level is not None:
        session.set_quality_level(update.quality_level)
    return _state(session)


@router.post("/sessions/{session_id}/compress", response_model=OperationResponse)
async def compress(
    session_id: str,
    store: SessionStore = Depends(get_session_store),
    operations: ImageOperations = Depends(get_operations),
):
    """Compress the loaded image and publish the result as a download."""
    session = store.get(session_id)
    result = await operations.compress(session)
    return _operation_response(session, result)


@router.post("/sessions/{session_id}/remove-background", response_model=OperationResponse)
async def remove_background(
    session_id: str,
    store: SessionStore = Depends(get_session_store),
    operations: ImageOperations = Depends(get_operations),
):
    """Remove the background; the cut-out replaces the loaded image."""
    session = store.get(session_id)
    result = await operations.remove_background(session)
    return _operation_response(session, result)
