from __future__ import annotations

import shutil
import tempfile
from pathlib import Path

from fastapi import APIRouter, File, HTTPException, UploadFile

from tippool.application import get_tip_pool_service
from tippool.core.errors import TipPoolError

router = APIRouter(prefix="/stores", tags=["upload"])

SUPPORTED_SUFFIXES = {".csv", ".xlsx"}


@router.post("/{store_id}/attendance")
async def upload_attendance(store_id: str, files: list[UploadFile] = File(...)) -> dict:
    """Upload one or more attendance sheets and add their shifts to the store.

    Nothing is stored unless every sheet parses.
    """
    if not files:
        raise HTTPException(status_code=400, detail="At least one file must be provided")

    service = get_tip_pool_service()

    with tempfile.TemporaryDirectory(prefix="tippool-") as workdir:
        targets: list[Path] = []
        for position, upload in enumerate(files):
            try:
                if not upload.filename:
                    raise HTTPException(status_code=400, detail="Uploaded file must have a filename")

                safe_name = Path(upload.filename).name
                if Path(safe_name).suffix.lower() not in SUPPORTED_SUFFIXES:
                    raise HTTPException(status_code=400, detail=f"Unsupported attendance file: {safe_name}")

                # same-named uploads each get their own directory
                target = Path(workdir) / str(position) / safe_name
                target.parent.mkdir()
                with target.open("wb") as buffer:
                    shutil.copyfileobj(upload.file, buffer)
                targets.append(target)
            finally:
                await upload.close()

        try:
            counts = service.import_attendance(store_id, targets)
        except TipPoolError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

    items = [{"filename": target.name, "rows": count} for target, count in zip(targets, counts)]
    return {"store_id": store_id, "items": items}
