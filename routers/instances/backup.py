"""
Download a snapshot of an instance's files as a zip archive.
"""

from fastapi import APIRouter, Request

from cratepanel.core.archive import ArchiveResponse

router = APIRouter()

@router.get('/{instance_id}/create-backup', response_class=ArchiveResponse)
async def create_backup(instance_id: str, request: Request):
    """
    Archive the instance's directory and stream it to the client.
    The archive only exists on the server for the duration of the download.
    """
    handle = await request.app.archives.create_backup(instance_id)
    return ArchiveResponse(handle)
