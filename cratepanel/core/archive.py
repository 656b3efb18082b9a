from fastapi import UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import FileResponse
from starlette.requests import ClientDisconnect
from starlette.types import Message, Receive, Scope, Send

from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

import aiofiles
import secrets
import time

from cratepanel.core.codec import pack, unpack, EntryFailure, CHUNK_SIZE
from cratepanel.core.errors import SourceNotFound, TransferFailure
from cratepanel.core.locks import InstanceLocks
from cratepanel.core.logger import log
from cratepanel.core.responses import respond
from cratepanel.core.security import validate_instance_id


@dataclass
class BackupHandle:
    instance_id: str
    path: Path
    created: datetime
    entries: list[str] = field(default_factory=list)

    @property
    def filename(self) -> str:
        """Name the client sees for the download"""
        return 'backup-%s-%s.zip' % (self.instance_id, self.created.strftime('%Y%m%d-%H%M%S'))

    def cleanup(self):
        self.path.unlink(missing_ok=True)


@dataclass
class RestoreResult:
    instance_id: str
    restored: list[str] = field(default_factory=list)
    failures: list[EntryFailure] = field(default_factory=list)

    @property
    def status(self) -> str:
        return 'partial' if self.failures else 'success'

    def respond(self):
        if self.failures:
            return respond(
                'restore_partial',
                instance_id=self.instance_id,
                restored=len(self.restored),
                failures=[{"entry": f.entry, "reason": f.reason} for f in self.failures]
            )

        return respond(
            'restore_succeeded',
            instance_id=self.instance_id,
            restored=len(self.restored)
        )


class ArchiveResponse(FileResponse):
    media_type = 'application/zip'

    def __init__(self, handle: BackupHandle, **kwargs):
        """
        Streams a backup to the client, then deletes it.
        The archive is removed whether the transfer finished, failed, or the client went away.
        """
        self.handle = handle

        super().__init__(
            handle.path,
            media_type='application/zip',
            filename=handle.filename,
            **kwargs
        )

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        started = False

        async def tracked_send(message: Message):
            nonlocal started
            await send(message)
            started = True

        try:
            await super().__call__(scope, receive, tracked_send)
        except ClientDisconnect:
            log.info("Client went away during transfer of %s" % self.handle.filename)
        except (OSError, RuntimeError) as e:
            log.warning("Transfer of %s failed: %s" % (self.handle.filename, e))

            # Once headers are out the client only sees a truncated body
            if started:
                raise
            raise TransferFailure("Failed to send %s" % self.handle.filename) from e
        finally:
            self.handle.cleanup()


class InstanceArchiveManager:
    def __init__(self, instances_path: str | Path, temp_path: str | Path):
        """
        Creates and restores backups of instance directories

        :param instances_path: Directory holding one subdirectory per instance.
        :param temp_path: Where archives live while they're being sent or received.
        """
        self.instances_path = Path(instances_path)
        self.temp_path = Path(temp_path)
        self.locks = InstanceLocks()

        if self.temp_path.is_file():
            raise NotADirectoryError(
                "Specified temp directory is a file. Please delete it or change your temp path."
            )

    def instance_path(self, instance_id: str) -> Path:
        """
        Get the directory of an instance. The ID is validated first.
        """
        return self.instances_path / validate_instance_id(instance_id)

    def _temp_file(self, kind: str, instance_id: str) -> Path:
        self.temp_path.mkdir(parents=True, exist_ok=True)
        return self.temp_path / ('%s-%s-%i-%s.zip' % (kind, instance_id, time.time_ns(), secrets.token_hex(4)))

    async def create_backup(self, instance_id: str) -> BackupHandle:
        """
        Package an instance's directory into a temporary zip archive.
        The caller owns the returned handle and must clean it up, which ArchiveResponse does.
        """
        source = self.instance_path(instance_id)

        if not source.is_dir():
            raise SourceNotFound("Instance %s has no directory" % instance_id, instance_id=instance_id)

        async with self.locks.hold(instance_id):
            handle = BackupHandle(
                instance_id=instance_id,
                path=self._temp_file('backup', instance_id),
                created=datetime.now(tz=timezone.utc)
            )

            metadata = {
                "instance": instance_id,
                "created": handle.created.isoformat(timespec='seconds')
            }

            try:
                result = await run_in_threadpool(pack, source, handle.path, metadata)
            except SourceNotFound as e:
                handle.cleanup()
                e.details.setdefault('instance_id', instance_id)
                raise
            except OSError as e:
                handle.cleanup()
                raise TransferFailure("Failed to archive %s" % instance_id) from e
            except BaseException:
                handle.cleanup()
                raise

        handle.entries = result.entries
        log.info(f"Packed [bold magenta]{instance_id}[/bold magenta] ({len(result.entries)} entries)")

        return handle

    async def receive_upload(self, instance_id: str, file: UploadFile) -> Path:
        """
        Spool an uploaded archive to the temp directory.
        """
        validate_instance_id(instance_id)
        upload_path = self._temp_file('upload', instance_id)

        try:
            # https://stackoverflow.com/a/63581187
            async with aiofiles.open(upload_path, 'wb') as out_file:
                while content := await file.read(CHUNK_SIZE):
                    await out_file.write(content)
        except OSError as e:
            upload_path.unlink(missing_ok=True)
            raise TransferFailure("Failed to receive upload for %s" % instance_id) from e
        except BaseException:
            upload_path.unlink(missing_ok=True)
            raise

        return upload_path

    async def restore_backup(self, instance_id: str, archive_path: str | Path, discard: bool = True) -> RestoreResult:
        """
        Extract an archive over an instance's directory, replacing existing files.

        :param instance_id: The instance to restore into. Its directory is created if needed.
        :param archive_path: The archive to restore from.
        :param discard: Delete the archive afterward, whatever happens. Off for archives the user owns.
        """
        destination = self.instance_path(instance_id)
        archive_path = Path(archive_path)

        try:
            async with self.locks.hold(instance_id):
                destination.mkdir(parents=True, exist_ok=True)
                result = await run_in_threadpool(unpack, archive_path, destination, True)
        finally:
            if discard:
                archive_path.unlink(missing_ok=True)

        restore = RestoreResult(instance_id, result.extracted, result.failures)

        if restore.failures:
            log.warning(f"Restored [bold magenta]{instance_id}[/bold magenta] with {len(restore.failures)} failed entries")
        else:
            log.info(f"Restored [bold magenta]{instance_id}[/bold magenta] ({len(restore.restored)} entries)")

        return restore
