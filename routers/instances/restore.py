"""
Restore an instance from an uploaded backup archive.
"""

from fastapi import APIRouter, File, Request, UploadFile

from cratepanel.core.security import validate_instance_id

router = APIRouter()

@router.post('/{instance_id}/upload-backup')
async def upload_backup(instance_id: str, request: Request, backup_zip: UploadFile = File(alias='backupZip')):
    """
    Extract an uploaded archive over the instance's directory, replacing existing files.
    Entries that can't be restored are listed in the response.
    """
    # Nothing gets written for an ID that's going to be rejected anyway
    validate_instance_id(instance_id)

    archives = request.app.archives

    upload_path = await archives.receive_upload(instance_id, backup_zip)
    result = await archives.restore_backup(instance_id, upload_path)

    return result.respond()
