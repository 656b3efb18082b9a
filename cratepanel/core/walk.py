"""
Directory traversal shared by route discovery and the archive codec.
"""

from pathlib import Path, PurePosixPath
from typing import Iterator, NamedTuple

DIR = 'dir'
FILE = 'file'
LINK = 'link'
OTHER = 'other'


class WalkEntry(NamedTuple):
    path: PurePosixPath
    kind: str


class DirectoryWalk:
    def __init__(self, root: str | Path):
        """
        Lazy depth-first walk over a directory tree.

        Entries come out in lexical order within each level, and a directory is
        yielded right before its own contents. Symbolic links are reported as
        LINK and never followed. Every iteration starts a fresh walk.

        :param root: The directory to walk. Paths are yielded relative to it.
        """
        self.root = Path(root)

    def __iter__(self) -> Iterator[WalkEntry]:
        return self._walk(self.root, PurePosixPath())

    def _walk(self, directory: Path, prefix: PurePosixPath) -> Iterator[WalkEntry]:
        for child in sorted(directory.iterdir(), key=lambda p: p.name):
            relative = prefix / child.name

            if child.is_symlink():
                yield WalkEntry(relative, LINK)
            elif child.is_dir():
                yield WalkEntry(relative, DIR)
                yield from self._walk(child, relative)
            elif child.is_file():
                yield WalkEntry(relative, FILE)
            else:
                yield WalkEntry(relative, OTHER)

    def files(self, suffix: str = None) -> Iterator[PurePosixPath]:
        """Only the regular files, optionally filtered by suffix"""
        for entry in self:
            if entry.kind == FILE and (suffix is None or entry.path.suffix == suffix):
                yield entry.path
