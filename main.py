"""
Cratepanel: a control panel for hosted game server instances.

Run this file directly, or point any ASGI server at `main:app`.
"""

from uvicorn import run, __version__ as uvicorn_version
from cratepanel import Cratepanel, __version__ as cratepanel_version

import logging

log = logging.getLogger('cratepanel')

log.info(f"Using [bold yellow]Cratepanel {cratepanel_version}[/bold yellow] as backend")
log.info(f"Using [bold yellow]uvicorn v{uvicorn_version}[/bold yellow] as server")

app = Cratepanel()

if __name__ == '__main__':
    run(
        app,
        host=app.config.server.host,
        port=app.config.server.port,
        log_level="error",
    )
