"""
A page listing every instance directory on this host.
"""

from fastapi import APIRouter, Request

router = APIRouter()

@router.get('/status')
async def server_status(request: Request):
    root = request.app.instances_path
    instances = sorted(p.name for p in root.iterdir() if p.is_dir()) if root.is_dir() else []

    return request.app.templates.TemplateResponse(
        request=request,
        name='server-status/status.html',
        context={
            "name": await request.app.settings.get('name'),
            "instances": instances
        }
    )
