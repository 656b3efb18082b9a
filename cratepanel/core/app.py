"""
An ASGI server built using FastAPI
"""
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.openapi.utils import get_openapi
from fastapi.templating import Jinja2Templates

from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from contextlib import asynccontextmanager
from pathlib import Path
from typing import Dict, Any, Optional

from cratepanel.core.logger import log
from cratepanel.core.config import Config, CONFIG_PATH
from cratepanel.core.archive import InstanceArchiveManager
from cratepanel.core.errors import PanelError
from cratepanel.core.plugins import ComposedSurface, compose, load_all
from cratepanel.core.responses import respond
from cratepanel.core.routing import discover_routes
from cratepanel.core.security import rate_limiter, rate_limit_exceeded_handler
from cratepanel.core.settings import SettingsStore


# The panel's own templates. Extension views are searched after these.
VIEWS_PATH = Path(__file__).absolute().parent.parent / 'views'

# Function to control app startup and shutdown
@asynccontextmanager
async def lifespan(app: 'Cratepanel'):
    # First-party routers are always mounted before anything a plugin brings
    core_routes = discover_routes(app.routers_path)
    descriptors = load_all(app.plugins_path)

    app.install(compose(descriptors, core_routes, VIEWS_PATH))

    log.info('Successfully completed automated setup.')
    yield

# Our main application class
class Cratepanel(FastAPI):
    def __init__(
            self,
            instances_path: Optional[str | Path] = None,
            plugins_path: Optional[str | Path] = None,
            routers_path: Optional[str | Path] = None,
            temp_path: Optional[str | Path] = None,
            *args,
            **kwargs
    ):
        """
        A control panel that assembles itself from route modules and plugins on startup

        Paths default to the ones in config.toml.

        :param instances_path: Directory holding one subdirectory per server instance.
        :param plugins_path: Directory to load extensions from.
        :param routers_path: Directory of first-party route modules.
        :param temp_path: Where backups are kept while they're being transferred.
        """
        # Aliases for convenience
        self.config = Config
        self.config_path = CONFIG_PATH

        self.instances_path = Path(instances_path or Config.paths.instances)
        self.plugins_path = Path(plugins_path or Config.paths.plugins)
        self.routers_path = Path(routers_path or Config.paths.routers)
        self.temp_path = Path(temp_path or Config.paths.temp)

        # Check if OpenAPI is disabled in the config
        if Config.advanced.integrated_docs:
            openapi_url = '/openapi.json'
            docs_url = '/docs'
        else:
            openapi_url = None
            docs_url = None

        # Set up FastAPI application
        super().__init__(
            *args,
            title=Config.app.name,
            summary=Config.app.summary,
            version=Config.app.version,
            docs_url=docs_url,
            redoc_url=None,
            openapi_url=openapi_url,
            lifespan=lifespan,
            **kwargs
        )

        self.archives = InstanceArchiveManager(self.instances_path, self.temp_path)

        # Filled in once the lifespan has composed everything
        self.surface: Optional[ComposedSurface] = None
        self.templates: Optional[Jinja2Templates] = None
        self.settings = SettingsStore(self.display_settings())

        # Initialize some variables
        self.tags = [
            {
                "name": "core",
                "description": "Built-in panel routes"
            }
        ]

        # Install rate limiter
        self.state.limiter = rate_limiter
        # noinspection PyTypeChecker
        self.add_middleware(SlowAPIMiddleware)

        # Make errors consistent with the panel's status messages
        # noinspection PyTypeChecker
        self.add_exception_handler(RequestValidationError, self.validation_exception_handler)
        # noinspection PyTypeChecker
        self.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
        # noinspection PyTypeChecker
        self.add_exception_handler(PanelError, self.panel_error_handler)
        self.add_exception_handler(404, self.not_found_handler)

    @staticmethod
    def display_settings() -> Dict[str, Any]:
        return {
            "name": Config.app.name,
            "flair": Config.app.flair,
            "version": Config.app.version,
            "summary": Config.app.summary,
        }

    def install(self, surface: ComposedSurface):
        """
        Mount a composed set of routes, views and settings entries. Only done once, at startup.
        """
        if self.surface is not None:
            raise RuntimeError("The panel has already been composed. Restart it to pick up plugin changes.")

        for name in surface.extensions:
            self.tags.append({
                "name": name,
                "description": "Routes contributed by the %s plugin" % name
            })

        surface.mount(self)

        self.surface = surface
        self.templates = surface.templates()
        self.settings = SettingsStore(self.display_settings(), surface.settings_entries)
        self.openapi_schema = None

    # noinspection PyUnusedLocal
    @staticmethod
    async def panel_error_handler(request: Request, exc: PanelError):
        return respond(exc.response_code, **exc.details)

    # noinspection PyUnusedLocal
    @staticmethod
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        err = exc.errors()[0]
        return respond(
            'validation_error',
            location=list(err['loc']),
            issue=err['msg'],
            type=err['type']
        )

    # noinspection PyUnusedLocal
    async def not_found_handler(self, request: Request, exc: Exception):
        if self.templates and 'text/html' in request.headers.get('accept', ''):
            return self.templates.TemplateResponse(
                request=request,
                name='errors/404.html',
                context={"name": await self.settings.get('name')},
                status_code=404
            )

        return respond('not_found')

    def openapi(self) -> Dict[str, Any]:
        if Config.advanced.cache_openapi and self.openapi_schema:
            return self.openapi_schema

        docs = ""

        if Config.app.flair:
            title = Config.app.flair + ' ' + self.title
        else:
            title = self.title

        if Config.rate_limits.enabled:
            docs += "\n## Rate Limiting\
            \nAfter you've passed the maximum number of requests, the server will refuse new requests \
            until enough time has passed.\n| **Requests** | **Duration** |\n|:---:|:---:|"

            for rate in Config.rate_limits.rules:
                requests, duration = rate.split('/')
                docs += "\n| %s | Per %s |" % (requests, duration)

        if self.surface and self.surface.extensions:
            docs += "\n## Extensions\n"
            for name in self.surface.extensions:
                docs += f"- `{name}`\n"

        self.openapi_schema = get_openapi(
            title=title,
            version=Config.app.version,
            summary=Config.app.summary,
            description=docs,
            tags=self.tags,
            routes=self.routes,
        )

        return self.openapi_schema
