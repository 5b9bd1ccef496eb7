"""
Tests for backup acquisition, extraction and integrity verification.
"""

import ftplib
import io
import stat
import tarfile
import zipfile
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import paramiko
import pytest
from aiohttp import test_utils, web

from hosting_migrator.core.exceptions import (
    AcquisitionError, BackupTooLargeError, ChecksumMismatchError, ConfigurationError, ExtractionError
)
from hosting_migrator.models.config import BackupSource, FtpConfig
from hosting_migrator.transfer import (
    AcquisitionMethodFactory, ArchiveAcquirer, ArchiveExtractor, ArchiveFormat,
    IntegrityVerifier, SizeGuard, detect_format
)
from hosting_migrator.transfer.methods.url import filename_from_url


class TestSizeGuard:
    """Test the size limit guard."""

    def test_expected_size_over_limit(self):
        with pytest.raises(BackupTooLargeError) as exc_info:
            SizeGuard(limit=2 * 1024 ** 3, expected=3 * 1024 ** 3)

        assert exc_info.value.size == 3 * 1024 ** 3
        assert exc_info.value.limit == 2 * 1024 ** 3

    def test_streamed_bytes_over_limit(self):
        guard = SizeGuard(limit=10)
        guard.add(6)

        with pytest.raises(BackupTooLargeError):
            guard.add(5)


class TestAcquisitionMethodFactory:
    """Test acquisition method registration."""

    def test_builtin_methods_registered(self):
        available = AcquisitionMethodFactory.get_available_methods()

        for kind in ("upload", "url", "ftp", "ftps", "sftp"):
            assert kind in available

    def test_unknown_method(self, settings):
        with pytest.raises(ConfigurationError):
            AcquisitionMethodFactory.create_method("carrier-pigeon", settings)


class TestUploadAcquisition:
    """Test acquiring pre-uploaded backups."""

    @pytest.mark.asyncio
    async def test_relative_upload_copied_into_workspace(self, settings, tmp_path):
        upload = Path(settings.upload_directory) / "backup.tar.gz"
        upload.write_bytes(b"x" * 100)

        backup = await ArchiveAcquirer(settings).acquire(
            BackupSource(uploaded_file="backup.tar.gz"), tmp_path / "downloads"
        )

        assert backup.path == tmp_path / "downloads" / "backup.tar.gz"
        assert backup.size == 100
        assert backup.source_kind == "upload"
        assert upload.exists()

    @pytest.mark.asyncio
    async def test_upload_escaping_upload_directory(self, settings, tmp_path):
        with pytest.raises(AcquisitionError):
            await ArchiveAcquirer(settings).acquire(
                BackupSource(uploaded_file="../secret.tar.gz"), tmp_path / "downloads"
            )

    @pytest.mark.asyncio
    async def test_missing_upload(self, settings, tmp_path):
        with pytest.raises(AcquisitionError) as exc_info:
            await ArchiveAcquirer(settings).acquire(
                BackupSource(uploaded_file="nope.tar.gz"), tmp_path / "downloads"
            )

        assert "not found" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_oversized_upload_not_copied(self, settings, tmp_path):
        settings.max_backup_size = 10
        (Path(settings.upload_directory) / "big.zip").write_bytes(b"x" * 11)

        with pytest.raises(BackupTooLargeError):
            await ArchiveAcquirer(settings).acquire(BackupSource(uploaded_file="big.zip"), tmp_path / "downloads")

        assert not (tmp_path / "downloads" / "big.zip").exists()

    @pytest.mark.asyncio
    async def test_directory_requires_permission(self, settings, tmp_path):
        site = Path(settings.upload_directory) / "site"
        (site / "public_html").mkdir(parents=True)
        (site / "public_html" / "index.html").write_text("hi")
        acquirer = ArchiveAcquirer(settings)

        with pytest.raises(AcquisitionError):
            await acquirer.acquire(BackupSource(uploaded_file="site"), tmp_path / "d1")

        backup = await acquirer.acquire(BackupSource(uploaded_file="site"), tmp_path / "d2", allow_directory=True)
        assert backup.is_directory
        assert (backup.path / "public_html" / "index.html").read_text() == "hi"


class TestUrlAcquisition:
    """Test HTTP downloads against a local aiohttp server."""

    @pytest.fixture
    def payload(self) -> bytes:
        return b"backup-bytes" * 1000

    async def serve(self, handler) -> test_utils.TestServer:
        app = web.Application()
        app.router.add_get("/files/{name}", handler)
        server = test_utils.TestServer(app)
        await server.start_server()
        return server

    def test_filename_from_url(self):
        assert filename_from_url("https://example.com/b/cpmove-bob.tar.gz?sig=1") == "cpmove-bob.tar.gz"
        assert filename_from_url("https://example.com/") == "backup.tar.gz"

    @pytest.mark.asyncio
    async def test_download(self, settings, tmp_path, payload):
        async def handler(request):
            return web.Response(body=payload)

        server = await self.serve(handler)
        try:
            url = str(server.make_url("/files/backup.tar.gz"))
            backup = await ArchiveAcquirer(settings).acquire(BackupSource(url=url), tmp_path / "downloads")
        finally:
            await server.close()

        assert backup.size == len(payload)
        assert backup.path.read_bytes() == payload
        assert backup.metadata["url"] == url

    @pytest.mark.asyncio
    async def test_client_error_not_retried(self, settings, tmp_path):
        calls = []

        async def handler(request):
            calls.append(request.path)
            return web.Response(status=404)

        server = await self.serve(handler)
        try:
            with pytest.raises(AcquisitionError) as exc_info:
                await ArchiveAcquirer(settings).acquire(
                    BackupSource(url=str(server.make_url("/files/missing.tar.gz"))), tmp_path / "downloads"
                )
        finally:
            await server.close()

        assert "HTTP 404" in str(exc_info.value)
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_server_errors_retried(self, settings, tmp_path, payload):
        calls = []

        async def handler(request):
            calls.append(request.path)
            if len(calls) < 3:
                return web.Response(status=503)
            return web.Response(body=payload)

        server = await self.serve(handler)
        try:
            backup = await ArchiveAcquirer(settings).acquire(
                BackupSource(url=str(server.make_url("/files/backup.tar.gz"))), tmp_path / "downloads"
            )
        finally:
            await server.close()

        assert len(calls) == 3
        assert backup.size == len(payload)

    @pytest.mark.asyncio
    async def test_retries_exhausted(self, settings, tmp_path):
        async def handler(request):
            return web.Response(status=500)

        server = await self.serve(handler)
        try:
            with pytest.raises(AcquisitionError) as exc_info:
                await ArchiveAcquirer(settings).acquire(
                    BackupSource(url=str(server.make_url("/files/backup.tar.gz"))), tmp_path / "downloads"
                )
        finally:
            await server.close()

        assert "after 3 attempts" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_oversized_download_aborts_without_retry(self, settings, tmp_path, payload):
        settings.max_backup_size = 100
        calls = []

        async def handler(request):
            calls.append(request.path)
            return web.Response(body=payload)

        server = await self.serve(handler)
        try:
            with pytest.raises(BackupTooLargeError):
                await ArchiveAcquirer(settings).acquire(
                    BackupSource(url=str(server.make_url("/files/backup.tar.gz"))), tmp_path / "downloads"
                )
        finally:
            await server.close()

        assert len(calls) == 1
        assert not (tmp_path / "downloads" / "backup.tar.gz").exists()


def ftp_source(**overrides) -> BackupSource:
    config = dict(host="ftp.example.com", username="bob", password="secret", remote_path="/backups/site.tar.gz")
    config.update(overrides)
    return BackupSource(ftp_config=FtpConfig(**config))


class TestFtpAcquisition:
    """Test FTP acquisition with a mocked ftplib client."""

    def client(self, chunks=(b"hello ", b"world")) -> MagicMock:
        client = MagicMock()
        client.size.return_value = sum(len(c) for c in chunks)

        def retrbinary(command, callback, blocksize=8192):
            for chunk in chunks:
                callback(chunk)

        client.retrbinary.side_effect = retrbinary
        return client

    @pytest.mark.asyncio
    async def test_single_file(self, settings, tmp_path):
        client = self.client()
        with patch("hosting_migrator.transfer.methods.ftp.ftplib.FTP", return_value=client):
            backup = await ArchiveAcquirer(settings).acquire(ftp_source(), tmp_path / "downloads")

        assert backup.path.read_bytes() == b"hello world"
        assert backup.source_kind == "ftp"
        client.connect.assert_called_once_with("ftp.example.com", 21)
        client.login.assert_called_once_with("bob", "secret")
        client.quit.assert_called_once()

    @pytest.mark.asyncio
    async def test_transient_login_failure_retried(self, settings, tmp_path):
        client = self.client()
        client.login.side_effect = [ftplib.error_temp("421 Too many connections"), None]
        with patch("hosting_migrator.transfer.methods.ftp.ftplib.FTP", return_value=client):
            backup = await ArchiveAcquirer(settings).acquire(ftp_source(), tmp_path / "downloads")

        assert client.login.call_count == 2
        assert backup.size == 11

    @pytest.mark.asyncio
    async def test_permission_error(self, settings, tmp_path):
        client = self.client()
        client.retrbinary.side_effect = ftplib.error_perm("550 No such file")
        with patch("hosting_migrator.transfer.methods.ftp.ftplib.FTP", return_value=client):
            with pytest.raises(AcquisitionError) as exc_info:
                await ArchiveAcquirer(settings).acquire(ftp_source(), tmp_path / "downloads")

        assert "refused" in str(exc_info.value)
        assert not (tmp_path / "downloads" / "site.tar.gz").exists()

    @pytest.mark.asyncio
    async def test_recursive_mirror(self, settings, tmp_path):
        client = self.client(chunks=(b"<html>",))
        listings = {
            "/site": [
                (".", {"type": "cdir"}),
                ("index.html", {"type": "file", "size": "6"}),
                ("assets", {"type": "dir"}),
            ],
            "/site/assets": [("app.js", {"type": "file", "size": "6"})],
        }
        client.mlsd.side_effect = lambda path, facts=None: iter(listings[path])
        source = ftp_source(remote_path="/site", recursive=True)

        with patch("hosting_migrator.transfer.methods.ftp.ftplib.FTP", return_value=client):
            backup = await ArchiveAcquirer(settings).acquire(source, tmp_path / "downloads", allow_directory=True)

        assert backup.is_directory
        assert backup.metadata["files"] == 2
        assert (backup.path / "assets" / "app.js").exists()

    @pytest.mark.asyncio
    async def test_recursive_requires_directory_permission(self, settings, tmp_path):
        client = self.client()
        with patch("hosting_migrator.transfer.methods.ftp.ftplib.FTP", return_value=client):
            with pytest.raises(AcquisitionError):
                await ArchiveAcquirer(settings).acquire(
                    ftp_source(remote_path="/site", recursive=True), tmp_path / "downloads"
                )


class TestSftpAcquisition:
    """Test SFTP acquisition with a mocked paramiko client."""

    def ssh_client(self, data: bytes = b"archive-data") -> MagicMock:
        client = MagicMock()
        sftp = client.open_sftp.return_value
        sftp.stat.return_value = SimpleNamespace(st_mode=stat.S_IFREG | 0o644, st_size=len(data))
        sftp.open.return_value.__enter__.return_value = io.BytesIO(data)
        return client

    @pytest.mark.asyncio
    async def test_single_file(self, settings, tmp_path):
        client = self.ssh_client()
        source = ftp_source(protocol="sftp")
        with patch("hosting_migrator.transfer.methods.sftp.SSHClient", return_value=client):
            backup = await ArchiveAcquirer(settings).acquire(source, tmp_path / "downloads")

        assert backup.path.read_bytes() == b"archive-data"
        assert backup.source_kind == "sftp"
        assert client.connect.call_args.kwargs["port"] == 22
        client.close.assert_called_once()

    @pytest.mark.asyncio
    async def test_authentication_failure_not_retried(self, settings, tmp_path):
        client = self.ssh_client()
        client.connect.side_effect = paramiko.AuthenticationException("bad password")
        with patch("hosting_migrator.transfer.methods.sftp.SSHClient", return_value=client):
            with pytest.raises(AcquisitionError) as exc_info:
                await ArchiveAcquirer(settings).acquire(ftp_source(protocol="sftp"), tmp_path / "downloads")

        assert "authentication failed" in str(exc_info.value)
        assert client.connect.call_count == 1

    @pytest.mark.asyncio
    async def test_declared_size_over_limit(self, settings, tmp_path):
        settings.max_backup_size = 5
        client = self.ssh_client()
        with patch("hosting_migrator.transfer.methods.sftp.SSHClient", return_value=client):
            with pytest.raises(BackupTooLargeError):
                await ArchiveAcquirer(settings).acquire(ftp_source(protocol="sftp"), tmp_path / "downloads")


def make_tar(path: Path, files: dict, mode: str = "w:gz") -> Path:
    with tarfile.open(path, mode) as tar:
        for name, content in files.items():
            data = content.encode()
            info = tarfile.TarInfo(name)
            info.size = len(data)
            tar.addfile(info, io.BytesIO(data))
    return path


class TestArchiveExtractor:
    """Test archive format detection and safe extraction."""

    @pytest.mark.parametrize("name,expected", [
        ("a.zip", ArchiveFormat.ZIP),
        ("a.tar", ArchiveFormat.TAR),
        ("a.tar.gz", ArchiveFormat.TAR_GZ),
        ("a.tgz", ArchiveFormat.TAR_GZ),
        ("a.tar.bz2", ArchiveFormat.TAR_BZ2),
    ])
    def test_detect_by_extension(self, name, expected):
        assert detect_format(name) == expected

    def test_detect_by_signature(self, tmp_path):
        archive = make_tar(tmp_path / "download", {"a.txt": "a"}, mode="w:gz")

        assert detect_format(archive) == ArchiveFormat.TAR_GZ

    def test_unknown_format(self, tmp_path):
        path = tmp_path / "backup.rar"
        path.write_bytes(b"Rar!\x1a\x07")

        with pytest.raises(ExtractionError):
            detect_format(path)

    @pytest.mark.asyncio
    async def test_extract_tar_gz(self, tmp_path):
        archive = make_tar(tmp_path / "b.tar.gz", {"site/index.html": "hi", "site/css/a.css": "body{}"})

        result = await ArchiveExtractor().extract(archive, tmp_path / "out")

        assert result.files_count == 2
        assert result.total_size == 8
        assert (tmp_path / "out" / "site" / "css" / "a.css").read_text() == "body{}"

    @pytest.mark.asyncio
    async def test_extract_zip(self, tmp_path):
        archive = tmp_path / "b.zip"
        with zipfile.ZipFile(archive, "w") as zf:
            zf.writestr("public_html/index.php", "<?php")

        result = await ArchiveExtractor().extract(archive, tmp_path / "out")

        assert result.archive_format == ArchiveFormat.ZIP
        assert (tmp_path / "out" / "public_html" / "index.php").exists()

    def test_rejects_path_traversal(self, tmp_path):
        archive = make_tar(tmp_path / "evil.tar.gz", {"../escape.txt": "x"})

        with pytest.raises(ExtractionError):
            ArchiveExtractor().extract_sync(archive, tmp_path / "out")

        assert not (tmp_path / "escape.txt").exists()

    def test_rejects_zip_absolute_member(self, tmp_path):
        archive = tmp_path / "evil.zip"
        with zipfile.ZipFile(archive, "w") as zf:
            zf.writestr("/etc/passwd", "root")

        with pytest.raises(ExtractionError):
            ArchiveExtractor().extract_sync(archive, tmp_path / "out")

    def test_rejects_link_outside(self, tmp_path):
        archive = tmp_path / "link.tar"
        with tarfile.open(archive, "w") as tar:
            info = tarfile.TarInfo("site/passwd")
            info.type = tarfile.SYMTYPE
            info.linkname = "../../etc/passwd"
            tar.addfile(info)

        with pytest.raises(ExtractionError):
            ArchiveExtractor().extract_sync(archive, tmp_path / "out")

    def test_requires_empty_destination(self, tmp_path):
        archive = make_tar(tmp_path / "b.tar.gz", {"a.txt": "a"})
        out = tmp_path / "out"
        out.mkdir()
        (out / "existing").write_text("x")

        with pytest.raises(ExtractionError):
            ArchiveExtractor().extract_sync(archive, out)

    def test_corrupt_archive(self, tmp_path):
        archive = tmp_path / "broken.zip"
        archive.write_bytes(b"PK\x03\x04 truncated")

        with pytest.raises(ExtractionError):
            ArchiveExtractor().extract_sync(archive, tmp_path / "out")


class TestIntegrityVerifier:
    """Test verified copies."""

    def test_copy_verified(self, tmp_path):
        source = tmp_path / "src.bin"
        source.write_bytes(b"\x00\x01" * 50000)

        result = IntegrityVerifier().copy_verified(source, tmp_path / "nested" / "dst.bin")

        assert result.matches
        assert result.size == 100000
        assert (tmp_path / "nested" / "dst.bin").read_bytes() == source.read_bytes()

    def test_mismatch_raises(self, tmp_path):
        source = tmp_path / "src.txt"
        source.write_text("content")
        verifier = IntegrityVerifier()

        with patch.object(verifier, "checksum", return_value="0" * 64):
            with pytest.raises(ChecksumMismatchError):
                verifier.copy_verified(source, tmp_path / "dst.txt")

    def test_unsupported_algorithm(self):
        with pytest.raises(ValueError):
            IntegrityVerifier(algorithm="crc-unknown")
