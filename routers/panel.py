"""
Information about the panel itself.
"""

from fastapi import APIRouter, Request

router = APIRouter(prefix='/panel')

@router.get('')
async def panel_info(request: Request):
    """Name and version of the panel, plus the extensions it loaded"""
    settings = request.app.settings

    return {
        "name": await settings.get('name'),
        "version": await settings.get('version'),
        "summary": await settings.get('summary'),
        "extensions": list(request.app.surface.extensions) if request.app.surface else []
    }

@router.get('/plugins')
async def plugin_settings(request: Request) -> list[dict]:
    """Settings entries contributed by extensions, in the order they were loaded"""
    return await request.app.settings.get('plugins', [])
