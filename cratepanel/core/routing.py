"""
Finds route modules on disk and imports them.
"""

from fastapi import APIRouter

from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Optional

import importlib.util

from cratepanel.core.logger import log
from cratepanel.core.walk import DirectoryWalk

# Namespace that first-party route modules are imported under
CORE_NAMESPACE = 'cratepanel_routes'


@dataclass(frozen=True)
class RouteModule:
    name: str
    path: Path
    router: APIRouter
    origin: str
    doc: Optional[str] = None


def is_route_file(relative: PurePosixPath) -> bool:
    """Python files, skipping anything with a private (underscored) path segment"""
    return relative.suffix == '.py' and not any(part.startswith('_') for part in relative.parts)


def load_route_module(path: Path, module_name: str):
    """
    Import a Python file from its location without touching sys.path
    """
    spec = importlib.util.spec_from_file_location(module_name, path)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def discover_routes(root: str | Path, namespace: str = CORE_NAMESPACE, origin: str = 'core',
                    tolerant: bool = False) -> list[RouteModule]:
    """
    Import every route module under a directory, in walk order.

    :param root: Directory to search recursively.
    :param namespace: Prefix for the module names the files are imported as.
    :param origin: Who the modules belong to. 'core' or an extension name.
    :param tolerant: Log and skip modules that fail to import instead of raising.
    """
    root = Path(root)

    if not root.is_dir():
        log.warning('Router directory %s does not exist' % root.absolute())
        return []

    log.info('Searching for routers in %s' % root.absolute())

    modules = []

    for relative in DirectoryWalk(root).files('.py'):
        if not is_route_file(relative):
            continue

        path = root / relative
        name = '.'.join(relative.with_suffix('').parts)

        try:
            module = load_route_module(path, namespace + '.' + name)
        except Exception:
            if not tolerant:
                raise
            log.warning('Failed to import %s' % path, exc_info=True)
            continue

        # Check if it has a router
        if not (hasattr(module, 'router') and isinstance(module.router, APIRouter)):
            log.warning('Failed to import router from %s' % path)
            continue

        log.info(f'Found router: [bold magenta]{name}[/bold magenta] ({origin})')

        modules.append(RouteModule(
            name=name,
            path=path,
            router=module.router,
            origin=origin,
            doc=module.__doc__
        ))

    return modules
