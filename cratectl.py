#!/usr/bin/env python3
"""
A tool for managing Cratepanel from the shell: backing up and restoring instances, and checking plugins.
"""
from pathlib import Path
import asyncio
import shutil
import sys

import fire
import questionary

from cratepanel.core.archive import InstanceArchiveManager
from cratepanel.core.config import Config
from cratepanel.core.errors import PanelError
from cratepanel.core.plugins import load_all

manager = InstanceArchiveManager(Config.paths.instances, Config.paths.temp)


def fail(message: str):
    print(message, file=sys.stderr)
    sys.exit(1)


class InstanceCLI:
    @staticmethod
    def backup(instance_id: str, output: str = None):
        """Write a backup of an instance to a zip file"""
        try:
            handle = asyncio.run(manager.create_backup(instance_id))
        except PanelError as e:
            fail(f"Backup failed: {e}")

        destination = Path(output) if output else Path.cwd() / handle.filename

        try:
            shutil.move(handle.path, destination)
        finally:
            handle.cleanup()

        print(f"{len(handle.entries)} entries written to {destination}")

    @staticmethod
    def restore(instance_id: str, archive: str, yes: bool = False):
        """Restore an instance from a zip file, replacing its existing files"""
        if not Path(archive).is_file():
            fail(f"{archive} doesn't exist")

        if not yes:
            confirmed = questionary.confirm(
                f"Files of {instance_id} will be overwritten by {archive}. Continue?",
                default=False
            ).ask()

            if not confirmed:
                exit()

        try:
            result = asyncio.run(manager.restore_backup(instance_id, archive, discard=False))
        except PanelError as e:
            fail(f"Restore failed: {e}")

        print(f"Restored {len(result.restored)} entries into {instance_id}")

        for failure in result.failures:
            print(f"  failed: {failure.entry} ({failure.reason})")

        if result.failures:
            sys.exit(2)


class PluginCLI:
    @staticmethod
    def ls(path: str = None):
        """List the plugins the panel would load"""
        descriptors = load_all(path or Config.paths.plugins)

        if not descriptors:
            print("No plugins found.")

        for name, descriptor in descriptors.items():
            print(f"{name}: {', '.join(sorted(descriptor.capabilities)) or 'nothing'} ({descriptor.root})")


class Pipeline:
    def __init__(self):
        self.instance = InstanceCLI()
        self.plugins = PluginCLI()


if __name__ == '__main__':
    fire.Fire(Pipeline)
