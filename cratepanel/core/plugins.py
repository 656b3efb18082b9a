"""
Plugin discovery and composition.

Every subdirectory of the plugins directory is a candidate extension. Its
plugin.toml names it and declares what it contributes:

    name = "status-page"
    capabilities = ["routes", "views", "settings-entries"]
    title = "Status page"      # anything else is the plugin's own config

    routes/   route modules, mounted after the panel's own routers
    views/    templates, searched after the panel's own views

Broken plugins are logged and skipped. The panel always starts.
"""

from fastapi import FastAPI
from fastapi.templating import Jinja2Templates
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Iterable, Mapping, Union

import toml

from cratepanel.core.errors import DescriptorInvalid
from cratepanel.core.logger import log
from cratepanel.core.routing import RouteModule, discover_routes

DESCRIPTOR_FILENAME = 'plugin.toml'

ROUTES = 'routes'
VIEWS = 'views'
SETTINGS_ENTRIES = 'settings-entries'

CAPABILITIES = frozenset({ROUTES, VIEWS, SETTINGS_ENTRIES})

# Namespace that extension route modules are imported under
PLUGIN_NAMESPACE = 'cratepanel_plugins'


class ExtensionDescriptor(BaseModel):
    model_config = ConfigDict(extra='allow', frozen=True)

    name: str
    capabilities: frozenset[str] = frozenset()
    root: Path

    @field_validator('name')
    @classmethod
    def _name_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("'name' can't be empty")
        return value

    @field_validator('capabilities')
    @classmethod
    def _known_capabilities(cls, value: frozenset[str]) -> frozenset[str]:
        if unknown := value - CAPABILITIES:
            raise ValueError('Unknown capabilities: %s' % ', '.join(sorted(unknown)))
        return value

    @property
    def config(self) -> dict:
        """Everything in the descriptor that isn't name or capabilities"""
        return dict(self.model_extra or {})

    @property
    def routes_path(self) -> Path:
        return self.root / 'routes'

    @property
    def views_path(self) -> Path:
        return self.root / 'views'


def infer_capabilities(directory: Path, data: dict) -> list[str]:
    """
    Capabilities of a descriptor that doesn't list any, judging by what's on disk
    """
    capabilities = []

    if (directory / 'routes').is_dir():
        capabilities.append(ROUTES)
    if (directory / 'views').is_dir():
        capabilities.append(VIEWS)
    if any(key not in ('name', 'capabilities', 'root') for key in data):
        capabilities.append(SETTINGS_ENTRIES)

    return capabilities


def load_descriptor(directory: str | Path) -> ExtensionDescriptor:
    """
    Read and validate a plugin's descriptor.
    :raises DescriptorInvalid: If the descriptor is missing, unreadable, or fails validation.
    """
    directory = Path(directory)
    path = directory / DESCRIPTOR_FILENAME

    try:
        with open(path, mode='r', encoding='UTF-8') as fp:
            data = toml.load(fp)
    except FileNotFoundError as e:
        raise DescriptorInvalid("%s has no %s" % (directory.name, DESCRIPTOR_FILENAME)) from e
    except (OSError, ValueError) as e:
        raise DescriptorInvalid("Couldn't read %s: %s" % (path, e)) from e

    # The root always comes from where the plugin was found
    data.pop('root', None)

    if 'capabilities' not in data:
        data['capabilities'] = infer_capabilities(directory, data)

    try:
        return ExtensionDescriptor.model_validate({**data, 'root': directory})
    except ValidationError as e:
        raise DescriptorInvalid("Invalid descriptor %s: %s" % (path, e)) from e


def load_all(plugins_path: str | Path) -> dict[str, ExtensionDescriptor]:
    """
    Load the descriptor of every plugin in a directory.

    Plugins are visited in lexical order of their directory names and the result
    keeps that order. When two plugins share a name, the first one wins.
    """
    plugins_path = Path(plugins_path)
    descriptors = {}

    if not plugins_path.is_dir():
        log.warning('Plugins directory %s does not exist. No plugins will be loaded.' % plugins_path.absolute())
        return descriptors

    log.info('Searching for plugins in %s' % plugins_path.absolute())

    for directory in sorted(plugins_path.iterdir(), key=lambda p: p.name):
        if not directory.is_dir() or directory.name.startswith(('.', '_')):
            continue

        try:
            descriptor = load_descriptor(directory)
        except DescriptorInvalid as e:
            log.warning('Skipping plugin %s: %s' % (directory.name, e))
            continue

        if descriptor.name in descriptors:
            log.warning(
                'Skipping plugin in %s: the name %r is already taken by %s'
                % (directory, descriptor.name, descriptors[descriptor.name].root)
            )
            continue

        log.info(f'Found plugin: [bold magenta]{descriptor.name}[/bold magenta]')
        descriptors[descriptor.name] = descriptor

    return descriptors


class ExtensionRegistry:
    def __init__(self, descriptors: Iterable[ExtensionDescriptor]):
        """
        Read-only lookup of which extensions provide each capability, in discovery order
        """
        providers = {capability: [] for capability in sorted(CAPABILITIES)}
        names = []

        for descriptor in descriptors:
            names.append(descriptor.name)
            for capability in descriptor.capabilities:
                providers[capability].append(descriptor)

        self.names = tuple(names)
        self._providers = MappingProxyType({
            capability: tuple(found) for capability, found in providers.items()
        })

    def __len__(self):
        return len(self.names)

    def providers(self, capability: str) -> tuple[ExtensionDescriptor, ...]:
        return self._providers[capability]


@dataclass(frozen=True)
class ComposedSurface:
    routes: tuple[RouteModule, ...]
    view_paths: tuple[Path, ...]
    settings_entries: tuple[dict, ...]
    registry: ExtensionRegistry

    @property
    def extensions(self) -> tuple[str, ...]:
        return self.registry.names

    def mount(self, app: FastAPI):
        """
        Include every router at the application root. Earlier routers shadow later ones.
        """
        for module in self.routes:
            app.include_router(module.router, tags=[module.origin])

    def templates(self) -> Jinja2Templates:
        return Jinja2Templates(directory=list(self.view_paths))


def compose(
        descriptors: Union[Mapping[str, ExtensionDescriptor], Iterable[ExtensionDescriptor]],
        core_routes: Iterable[RouteModule],
        views_path: str | Path
) -> ComposedSurface:
    """
    Merge what the extensions contribute with the panel's own routes and views.

    :param descriptors: Loaded extensions, in discovery order.
    :param core_routes: The panel's own route modules. They always come first.
    :param views_path: The panel's own views directory. Searched first.
    """
    if isinstance(descriptors, Mapping):
        descriptors = descriptors.values()

    unique = {}

    for descriptor in descriptors:
        if descriptor.name in unique:
            log.warning('Extension %r was already composed. Ignoring %s' % (descriptor.name, descriptor.root))
            continue
        unique[descriptor.name] = descriptor

    registry = ExtensionRegistry(unique.values())

    routes = list(core_routes)

    for descriptor in registry.providers(ROUTES):
        if not descriptor.routes_path.is_dir():
            log.warning('Extension %r declares routes but has no routes directory' % descriptor.name)
            continue

        routes += discover_routes(
            descriptor.routes_path,
            namespace='%s.%s' % (PLUGIN_NAMESPACE, descriptor.name),
            origin=descriptor.name,
            tolerant=True
        )

    view_paths = [Path(views_path)]

    for descriptor in registry.providers(VIEWS):
        if not descriptor.views_path.is_dir():
            log.warning('Extension %r declares views but has no views directory' % descriptor.name)
            continue

        view_paths.append(descriptor.views_path)

    settings_entries = []

    for descriptor in registry.providers(SETTINGS_ENTRIES):
        if not descriptor.config:
            log.warning('Extension %r declares settings entries but has no configuration' % descriptor.name)
            continue

        settings_entries.append({"name": descriptor.name, **descriptor.config})

    return ComposedSurface(
        routes=tuple(routes),
        view_paths=tuple(view_paths),
        settings_entries=tuple(settings_entries),
        registry=registry
    )
