"""
A control panel for hosted game server instances, with backups and plugins.
"""

from cratepanel.core import Cratepanel
from cratepanel.core.archive import InstanceArchiveManager, ArchiveResponse
from cratepanel.core.plugins import ExtensionDescriptor, load_all, compose
from cratepanel.core import __version__

__title__ = "Cratepanel"
__summary__ = "A control panel for hosted game server instances"
