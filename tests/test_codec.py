"""Tests for cratepanel.core.codec."""

import io
import struct
import zipfile
from pathlib import Path

import pytest

from cratepanel.core.codec import pack, unpack, read_metadata
from cratepanel.core.errors import (
    ArchiveInvalid, DestinationConflict, PathTraversal, SourceNotFound
)


def _snapshot(root: Path) -> dict:
    """Relative path -> bytes for files, None for directories."""
    return {
        p.relative_to(root).as_posix(): (p.read_bytes() if p.is_file() else None)
        for p in sorted(root.rglob('*'))
    }


def _deflated(entries: dict) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, 'w', compression=zipfile.ZIP_DEFLATED) as zf:
        for name, content in entries.items():
            zf.writestr(name, content)
    return buffer.getvalue()


def _garble_first_entry(data: bytes) -> bytes:
    """Overwrite the compressed data of the first entry with junk."""
    name_length, extra_length = struct.unpack('<HH', data[26:30])
    with zipfile.ZipFile(io.BytesIO(data)) as zf:
        size = zf.infolist()[0].compress_size

    start = 30 + name_length + extra_length
    return data[:start] + b'\xff' * size + data[start + size:]


def _mark_first_entry_encrypted(data: bytes) -> bytes:
    data = bytearray(data)
    data[6] |= 0x01
    data[data.index(b'PK\x01\x02') + 8] |= 0x01
    return bytes(data)


class TestPack:
    def test_round_trip(self, tmp_path: Path):
        source = tmp_path / 'source'
        (source / 'world' / 'region').mkdir(parents=True)
        (source / 'logs').mkdir()
        (source / 'config.yml').write_text('port: 25565\n')
        (source / 'world' / 'region' / 'r.0.0.mca').write_bytes(b'\x00\xff' * 4096)

        archive = tmp_path / 'backup.zip'
        result = pack(source, archive)

        destination = tmp_path / 'restored'
        unpacked = unpack(archive, destination)

        assert unpacked.ok
        assert _snapshot(destination) == _snapshot(source)
        assert 'logs/' in result.entries
        assert 'world/region/r.0.0.mca' in result.entries

    def test_missing_source(self, tmp_path: Path):
        with pytest.raises(SourceNotFound):
            pack(tmp_path / 'nope', tmp_path / 'out.zip')

        assert not (tmp_path / 'out.zip').exists()

    def test_links_outside_are_skipped(self, tmp_path: Path):
        outside = tmp_path / 'secret.txt'
        outside.write_text('password')

        source = tmp_path / 'source'
        source.mkdir()
        (source / 'real.txt').write_text('data')
        (source / 'alias.txt').symlink_to(source / 'real.txt')
        (source / 'leak.txt').symlink_to(outside)

        buffer = io.BytesIO()
        result = pack(source, buffer)

        with zipfile.ZipFile(buffer) as zf:
            assert sorted(zf.namelist()) == ['alias.txt', 'real.txt']
            assert zf.read('alias.txt') == b'data'

        assert [name for name, _ in result.skipped] == ['leak.txt']

    def test_directory_links_are_not_followed(self, tmp_path: Path):
        source = tmp_path / 'source'
        (source / 'world').mkdir(parents=True)
        (source / 'loop').symlink_to(source, target_is_directory=True)

        buffer = io.BytesIO()
        result = pack(source, buffer)

        assert result.entries == ['world/']
        assert [name for name, _ in result.skipped] == ['loop']

    def test_metadata_is_stored_in_comment(self, tmp_path: Path):
        source = tmp_path / 'source'
        source.mkdir()

        archive = tmp_path / 'backup.zip'
        pack(source, archive, metadata={"instance": "srv-1", "created": "2024-01-01T00:00:00+00:00"})

        assert read_metadata(archive) == {"instance": "srv-1", "created": "2024-01-01T00:00:00+00:00"}

    def test_metadata_missing(self, tmp_path: Path, zip_bytes):
        assert read_metadata(io.BytesIO(zip_bytes({'a.txt': b'a'}))) == {}


class TestUnpack:
    def test_zip_slip_is_rejected(self, tmp_path: Path, zip_bytes):
        destination = tmp_path / 'a' / 'b' / 'dest'
        archive = io.BytesIO(zip_bytes({
            '../../escape.txt': b'gotcha',
            'fine.txt': b'ok',
        }))

        result = unpack(archive, destination)

        assert not (tmp_path / 'a' / 'escape.txt').exists()
        assert not (tmp_path / 'escape.txt').exists()
        assert (destination / 'fine.txt').read_bytes() == b'ok'
        assert result.extracted == ['fine.txt']
        assert [f.entry for f in result.failures] == ['../../escape.txt']
        assert isinstance(result.failures[0].error, PathTraversal)

    def test_absolute_entry_is_rejected(self, tmp_path: Path, zip_bytes):
        target = tmp_path / 'abs.txt'
        archive = io.BytesIO(zip_bytes({str(target): b'nope'}))

        result = unpack(archive, tmp_path / 'dest')

        assert not target.exists()
        assert isinstance(result.failures[0].error, PathTraversal)

    def test_existing_link_out_of_destination_is_rejected(self, tmp_path: Path, zip_bytes):
        outside = tmp_path / 'outside'
        outside.mkdir()
        destination = tmp_path / 'dest'
        destination.mkdir()
        (destination / 'plugins').symlink_to(outside, target_is_directory=True)

        result = unpack(io.BytesIO(zip_bytes({'plugins/evil.jar': b'x'})), destination)

        assert list(outside.iterdir()) == []
        assert isinstance(result.failures[0].error, PathTraversal)

    def test_conflicts_are_reported_and_others_continue(self, tmp_path: Path, zip_bytes):
        destination = tmp_path / 'dest'
        destination.mkdir()
        (destination / 'config.yml').write_text('original')

        result = unpack(
            io.BytesIO(zip_bytes({'config.yml': b'new', 'world/level.dat': b'level'})),
            destination,
            overwrite=False
        )

        assert (destination / 'config.yml').read_text() == 'original'
        assert (destination / 'world' / 'level.dat').read_bytes() == b'level'
        assert not result.ok
        assert [f.entry for f in result.failures] == ['config.yml']
        assert isinstance(result.failures[0].error, DestinationConflict)

    def test_overwrite_replaces_files(self, tmp_path: Path, zip_bytes):
        destination = tmp_path / 'dest'
        destination.mkdir()
        (destination / 'config.yml').write_text('original')

        result = unpack(io.BytesIO(zip_bytes({'config.yml': b'new'})), destination, overwrite=True)

        assert result.ok
        assert (destination / 'config.yml').read_bytes() == b'new'
        assert sorted(p.name for p in destination.iterdir()) == ['config.yml']

    def test_file_over_directory_is_a_per_entry_failure(self, tmp_path: Path, zip_bytes):
        destination = tmp_path / 'dest'
        (destination / 'world').mkdir(parents=True)

        result = unpack(
            io.BytesIO(zip_bytes({'world': b'not a dir', 'ok.txt': b'ok'})),
            destination,
            overwrite=True
        )

        assert (destination / 'world').is_dir()
        assert (destination / 'ok.txt').exists()
        assert [f.entry for f in result.failures] == ['world']

    def test_corrupt_archive(self, tmp_path: Path):
        with pytest.raises(ArchiveInvalid):
            unpack(io.BytesIO(b'definitely not a zip file'), tmp_path / 'dest')

        assert not (tmp_path / 'dest').exists()

    def test_corrupt_entry_does_not_stop_the_rest(self, tmp_path: Path):
        archive = _garble_first_entry(_deflated({
            'world/region.dat': b'chunk data ' * 512,
            'config.yml': b'port: 25565\n',
        }))
        destination = tmp_path / 'dest'

        result = unpack(io.BytesIO(archive), destination, overwrite=True)

        assert result.extracted == ['config.yml']
        assert [f.entry for f in result.failures] == ['world/region.dat']
        assert not (destination / 'world' / 'region.dat').exists()
        assert (destination / 'config.yml').read_bytes() == b'port: 25565\n'

    def test_encrypted_entry_is_a_per_entry_failure(self, tmp_path: Path, zip_bytes):
        archive = _mark_first_entry_encrypted(zip_bytes({
            'secret.txt': b'top secret',
            'readme.txt': b'hello',
        }))
        destination = tmp_path / 'dest'

        result = unpack(io.BytesIO(archive), destination, overwrite=True)

        assert result.extracted == ['readme.txt']
        assert [f.entry for f in result.failures] == ['secret.txt']
        assert isinstance(result.failures[0].error, RuntimeError)
        assert sorted(p.name for p in destination.iterdir()) == ['readme.txt']

    @pytest.mark.parametrize('name', ['a/..', '.'])
    def test_file_entry_naming_the_destination_is_rejected(self, tmp_path: Path, zip_bytes, name):
        box = tmp_path / 'box'
        destination = box / 'dest'
        destination.mkdir(parents=True)

        result = unpack(io.BytesIO(zip_bytes({name: b'payload'})), destination, overwrite=True)

        assert result.extracted == []
        assert isinstance(result.failures[0].error, PathTraversal)
        assert sorted(p.name for p in box.iterdir()) == ['dest']
        assert destination.is_dir()
