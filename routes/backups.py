import io
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from fastapi.responses import Response, StreamingResponse

from db.database import get_db
from utils.backup import BackupError, create_backup_archive_bytes, export_json, restore_backup_archive, restore_json

router = APIRouter()


def _timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")


@router.get("/backup")
async def download_backup(conn=Depends(get_db)):
    data = create_backup_archive_bytes(conn)
    filename = f"sentencepaths-backup-{_timestamp()}.zip"
    headers = {"Content-Disposition": f"attachment; filename={filename}"}
    return StreamingResponse(io.BytesIO(data), media_type="application/zip", headers=headers)


@router.post("/restore")
async def restore_backup(file: UploadFile = File(...), conn=Depends(get_db)):
    if not file.filename:
        raise HTTPException(status_code=400, detail="Backup file is required")
    data = await file.read()
    try:
        counts = restore_backup_archive(conn, data)
    except BackupError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return {"restored": counts}


@router.get("/export")
async def export_library(conn=Depends(get_db)):
    filename = f"sentencepaths-{_timestamp()}.json"
    headers = {"Content-Disposition": f"attachment; filename={filename}"}
    return Response(content=export_json(conn), media_type="application/json", headers=headers)


@router.post("/import")
async def import_library(file: UploadFile = File(...), conn=Depends(get_db)):
    data = await file.read()
    if not data:
        raise HTTPException(status_code=400, detail="Backup file is empty")
    try:
        counts = restore_json(conn, data.decode("utf-8-sig"))
    except UnicodeDecodeError:
        raise HTTPException(status_code=400, detail="Backup must be UTF-8 JSON")
    except BackupError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return {"restored": counts}
