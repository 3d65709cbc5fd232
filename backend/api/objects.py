"""
Object Endpoints
================
Serve the bytes behind preview and download URLs until they are revoked.
"""

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import FileResponse, Response

from api.dependencies import get_storage
from services.storage_service import StorageService, StoredObject

router = APIRouter()


async def _serve(stored: StoredObject, storage: StorageService, disposition: str):
    local_path = storage.get_local_path(stored.object_id)
    if local_path:
        return FileResponse(
            local_path,
            media_type=stored.content_type,
            filename=stored.filename,
            content_disposition_type=disposition,
        )

    data = await storage.get_bytes(stored.object_id)
    if data is None:
        raise HTTPException(status_code=404, detail="Object not found")
    return Response(
        content=data,
        media_type=stored.content_type,
        headers={"Content-Disposition": f'{disposition}; filename="{stored.filename}"'},
    )


@router.get("/preview/{object_id}")
async def get_preview(object_id: str, storage: StorageService = Depends(get_storage)):
    """Inline image for the preview pane."""
    stored = storage.resolve(object_id)
    if stored is None or stored.attachment:
        raise HTTPException(status_code=404, detail="Preview not found")
    return await _serve(stored, storage, "inline")


@router.get("/download/{object_id}")
async def download(object_id: str, storage: StorageService = Depends(get_storage)):
    """Produced file as an attachment."""
    stored = storage.resolve(object_id)
    if stored is None or not stored.attachment:
        raise HTTPException(status_code=404, detail="Download not found")
    return await _serve(stored, storage, "attachment")
