"""
Turns an instance directory into a zip archive and back.

Archives hold one entry per regular file plus a `name/` entry per directory,
so empty directories survive a round trip. The zip comment carries a small
JSON blob describing where the archive came from.
"""

from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import BinaryIO, Optional

import json
import os
import shutil
import zipfile
import zlib

from cratepanel.core.errors import (
    ArchiveInvalid, DestinationConflict, PathTraversal, SourceNotFound
)
from cratepanel.core.logger import log
from cratepanel.core.walk import DirectoryWalk, DIR, FILE, LINK

# Copy buffer size for streaming entries in and out of the archive
CHUNK_SIZE = 1024 * 1024

# Errors that only affect the entry being extracted
ENTRY_ERRORS = (
    PathTraversal, DestinationConflict, OSError, zipfile.BadZipFile,
    zlib.error, EOFError, RuntimeError, NotImplementedError
)


@dataclass
class PackResult:
    entries: list[str] = field(default_factory=list)
    skipped: list[tuple[str, str]] = field(default_factory=list)


@dataclass
class EntryFailure:
    entry: str
    error: Exception

    @property
    def reason(self) -> str:
        return '%s: %s' % (type(self.error).__name__, self.error)


@dataclass
class UnpackResult:
    extracted: list[str] = field(default_factory=list)
    failures: list[EntryFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


def _is_within(path: Path, root: Path) -> bool:
    return path == root or path.is_relative_to(root)


def pack(source: str | Path, target: str | Path | BinaryIO, metadata: Optional[dict] = None) -> PackResult:
    """
    Write the contents of a directory into a zip archive.

    Symbolic links are only archived when they point at a file inside `source`,
    in which case the file's content is stored. Anything else is skipped and
    reported in the result.

    :param source: Directory to archive. Entry names are relative to it.
    :param target: Path or writable binary file object for the archive.
    :param metadata: Optional dictionary stored as JSON in the zip comment.
    :raises SourceNotFound: If `source` isn't a directory.
    """
    source = Path(source)

    if not source.is_dir():
        raise SourceNotFound("%s is not a directory" % source)

    root = source.resolve()
    result = PackResult()

    with zipfile.ZipFile(target, 'w', compression=zipfile.ZIP_DEFLATED, allowZip64=True) as zf:
        if metadata:
            zf.comment = json.dumps(metadata, sort_keys=True).encode('utf-8')

        for entry in DirectoryWalk(source):
            name = entry.path.as_posix()
            local = source / entry.path

            if entry.kind == DIR:
                zf.write(local, name)
                result.entries.append(name + '/')

            elif entry.kind == FILE:
                zf.write(local, name)
                result.entries.append(name)

            elif entry.kind == LINK:
                resolved = local.resolve()

                if not _is_within(resolved, root):
                    log.warning("Skipping %s: link points outside of %s" % (name, source))
                    result.skipped.append((name, 'link escapes source directory'))
                elif resolved.is_file():
                    zf.write(resolved, name)
                    result.entries.append(name)
                else:
                    log.warning("Skipping %s: only links to files are archived" % name)
                    result.skipped.append((name, 'link is not a regular file'))

            else:
                log.warning("Skipping %s: not a regular file or directory" % name)
                result.skipped.append((name, 'unsupported file type'))

    return result


def _destination_for(name: str, root: Path) -> Path:
    """
    Work out where an entry lands, refusing anything outside `root`.
    `root` must already be resolved.
    """
    relative = PurePosixPath(name)

    if relative.is_absolute():
        raise PathTraversal("Entry %s is an absolute path" % name)

    # Catches links already present in the destination too
    target = (root / relative).resolve()

    if not _is_within(target, root):
        raise PathTraversal("Entry %s resolves outside the destination directory" % name)

    return target


def _extract_file(zf: zipfile.ZipFile, info: zipfile.ZipInfo, target: Path):
    target.parent.mkdir(parents=True, exist_ok=True)
    partial = target.with_name('.%s.partial' % target.name)

    try:
        with zf.open(info) as src, open(partial, 'wb') as dst:
            shutil.copyfileobj(src, dst, CHUNK_SIZE)
        os.replace(partial, target)
    finally:
        partial.unlink(missing_ok=True)


def unpack(archive: str | Path | BinaryIO, destination: str | Path, overwrite: bool = False) -> UnpackResult:
    """
    Extract a zip archive into a directory, one entry at a time.

    An entry that escapes `destination` or collides with an existing path while
    `overwrite` is off is recorded in the result. So is one whose data can't be
    read back (corrupt, truncated, encrypted) or written out. The rest of the
    archive is still extracted.

    :param archive: Path or readable binary file object of the archive.
    :param destination: Directory to extract into. Created if missing.
    :param overwrite: Replace files that already exist.
    :raises ArchiveInvalid: If the archive can't be opened as a zip file.
    """
    destination = Path(destination)
    result = UnpackResult()

    try:
        zf = zipfile.ZipFile(archive, 'r')
    except zipfile.BadZipFile as e:
        raise ArchiveInvalid(str(e)) from e

    with zf:
        destination.mkdir(parents=True, exist_ok=True)
        root = destination.resolve()

        for info in zf.infolist():
            try:
                target = _destination_for(info.filename, root)

                if info.is_dir():
                    target.mkdir(parents=True, exist_ok=True)
                else:
                    if target == root:
                        raise PathTraversal("Entry %s would replace the destination directory" % info.filename)
                    if target.exists() and not overwrite:
                        raise DestinationConflict("%s already exists" % info.filename)
                    _extract_file(zf, info, target)

            except ENTRY_ERRORS as e:
                log.warning("Failed to extract %s: %s" % (info.filename, e))
                result.failures.append(EntryFailure(info.filename, e))
                continue

            result.extracted.append(info.filename)

    return result


def read_metadata(archive: str | Path | BinaryIO) -> dict:
    """
    Get the JSON metadata stored in an archive's comment
    """
    try:
        with zipfile.ZipFile(archive, 'r') as zf:
            return json.loads(zf.comment.decode('utf-8')) if zf.comment else {}
    except zipfile.BadZipFile as e:
        raise ArchiveInvalid(str(e)) from e
    except ValueError:
        return {}
