"""Tests for the AEA client and the aea tool wrapper."""

import os
import subprocess
from pathlib import Path

import pytest

from aea.client import AEAClient, AEAConfig, output_path_for
from aea.container import encode_container
from aea.fetch import HTTPKeyFetcher
from aea.keys import PrivateKeyMaterial, generate_keypair
from aea.storage import EMBEDDED_KEYS, KeyDatabase
from aea.tool import AEATool
from aea.types import (
    FCS_RESPONSE,
    AuthenticationError,
    CollaboratorError,
    DecryptError,
    KeyNotFoundError,
    KeyURLMissingError,
    MalformedHeaderError,
    UnsupportedPlatformError,
)
from .conftest import CountingFetcher, FakeTool
from .test_vectors import ARCHIVE_KEY_B64, KEY_URL


class TestAEAConfig:
    """Test client configuration."""

    def test_defaults(self) -> None:
        config = AEAConfig.default()

        assert config.key_db_path is None
        assert config.allow_remote_fetch
        assert config.aea_binary == "/usr/bin/aea"

    def test_offline(self) -> None:
        client = AEAClient(AEAConfig.offline())
        assert client.resolver.fetcher is None

    def test_default_client_uses_embedded_database(self) -> None:
        client = AEAClient()

        assert client.resolver.database is EMBEDDED_KEYS
        assert isinstance(client.resolver.fetcher, HTTPKeyFetcher)
        assert client.resolver.fetcher.timeout == 30.0

    def test_offline_default_needs_key_db(self, container_path) -> None:
        """The bundled database is empty, so offline lookups need with_key_db."""
        with pytest.raises(DecryptError) as excinfo:
            AEAClient(AEAConfig.offline()).unwrap(container_path)

        assert excinfo.value.phase == "resolve"
        assert isinstance(excinfo.value.cause, KeyNotFoundError)

    def test_with_key_db(self, tmp_path, key_database, container_path) -> None:
        """A configured key database file is used for lookups."""
        db_path = tmp_path / "keys.json.gz"
        db_path.write_bytes(key_database.to_bytes())

        config = AEAConfig.offline().with_key_db(db_path)
        assert config.key_db_path == db_path

        client = AEAClient(config)
        assert client.unwrap(container_path) == ARCHIVE_KEY_B64


class TestUnwrap:
    """Test the parse -> resolve -> unwrap pipeline."""

    def test_unwrap_from_database(self, container_path, key_database, fetcher) -> None:
        client = AEAClient(database=key_database, fetcher=fetcher, tool=FakeTool())

        assert client.unwrap(container_path) == ARCHIVE_KEY_B64
        assert fetcher.calls == []

    def test_unwrap_from_remote(self, container_path, receiver_pem) -> None:
        fetcher = CountingFetcher({KEY_URL: receiver_pem})
        client = AEAClient(database=KeyDatabase({}), fetcher=fetcher, tool=FakeTool())

        assert client.unwrap(container_path) == ARCHIVE_KEY_B64
        assert fetcher.calls == [KEY_URL]

    def test_unwrap_with_override(self, tmp_path, fcs_response, receiver_pem, fetcher) -> None:
        """Override keys work even without a key URL in the metadata."""
        path = tmp_path / "nourl.aea"
        path.write_bytes(encode_container({FCS_RESPONSE: fcs_response.to_json()}))
        client = AEAClient(database=KeyDatabase({}), fetcher=fetcher, tool=FakeTool())

        assert client.unwrap(path, override=receiver_pem) == ARCHIVE_KEY_B64
        assert fetcher.calls == []

    def test_info(self, container_path, metadata) -> None:
        assert dict(AEAClient(AEAConfig.offline()).info(container_path)) == metadata

    def test_parse_phase(self, tmp_path, fetcher) -> None:
        path = tmp_path / "bad.aea"
        path.write_bytes(b"NOPE" + bytes(8))
        client = AEAClient(database=KeyDatabase({}), fetcher=fetcher)

        with pytest.raises(DecryptError) as excinfo:
            client.unwrap(path)

        assert excinfo.value.phase == "parse"
        assert isinstance(excinfo.value.__cause__, MalformedHeaderError)

    def test_resolve_phase(self, tmp_path, fcs_response, fetcher) -> None:
        path = tmp_path / "nourl.aea"
        path.write_bytes(encode_container({FCS_RESPONSE: fcs_response.to_json()}))
        client = AEAClient(database=KeyDatabase({}), fetcher=fetcher)

        with pytest.raises(DecryptError) as excinfo:
            client.unwrap(path)

        assert excinfo.value.phase == "resolve"
        assert isinstance(excinfo.value.cause, KeyURLMissingError)

    def test_unwrap_phase(self, container_path, fetcher) -> None:
        other, _ = generate_keypair()
        wrong = PrivateKeyMaterial.from_private_key(other).data
        client = AEAClient(database=KeyDatabase({}), fetcher=fetcher)

        with pytest.raises(DecryptError, match="failed to unwrap") as excinfo:
            client.unwrap(container_path, override=wrong)

        assert excinfo.value.phase == "unwrap"
        assert isinstance(excinfo.value.cause, AuthenticationError)

    def test_missing_input_file(self, tmp_path, fetcher) -> None:
        """I/O failures while reading the container are reported as the parse phase."""
        client = AEAClient(database=KeyDatabase({}), fetcher=fetcher)

        with pytest.raises(DecryptError) as excinfo:
            client.unwrap(tmp_path / "missing.aea")

        assert excinfo.value.phase == "parse"
        assert isinstance(excinfo.value.cause, FileNotFoundError)
        assert fetcher.calls == []


class TestDecrypt:
    """Test the full decrypt orchestration."""

    def test_end_to_end(self, container_path, key_database, fetcher, tmp_path) -> None:
        """A synthetic container yields the precomputed key and an output file."""
        out_dir = tmp_path / "out"
        out_dir.mkdir()
        tool = FakeTool()
        client = AEAClient(database=key_database, fetcher=fetcher, tool=tool)

        output = client.decrypt(container_path, out_dir)

        assert output == str(out_dir / "archive")
        assert tool.calls == [(str(container_path), output, ARCHIVE_KEY_B64)]
        assert Path(output).read_bytes() == b"decrypted"

    def test_unsupported_platform_fails_first(self, tmp_path, fetcher) -> None:
        """The platform gate runs before the container is even opened."""
        tool = FakeTool(supported=False)
        client = AEAClient(database=KeyDatabase({}), fetcher=fetcher, tool=tool)

        with pytest.raises(UnsupportedPlatformError, match="macOS"):
            client.decrypt(tmp_path / "does-not-exist.aea", tmp_path)
        assert tool.calls == []

    def test_failed_phase_produces_no_output(self, tmp_path, fetcher) -> None:
        path = tmp_path / "bad.aea"
        path.write_bytes(b"NOPE" + bytes(8))
        tool = FakeTool()
        client = AEAClient(database=KeyDatabase({}), fetcher=fetcher, tool=tool)

        with pytest.raises(DecryptError):
            client.decrypt(path, tmp_path / "out")
        assert tool.calls == []
        assert not (tmp_path / "out").exists()

    def test_tool_failure_removes_output(self, container_path, key_database, fetcher, tmp_path) -> None:
        tool = FakeTool(fail=True)
        client = AEAClient(database=key_database, fetcher=fetcher, tool=tool)

        with pytest.raises(DecryptError) as excinfo:
            client.decrypt(container_path, tmp_path)

        assert excinfo.value.phase == "decrypt"
        assert isinstance(excinfo.value.cause, CollaboratorError)
        assert "bad key" in str(excinfo.value)
        assert not (tmp_path / "archive").exists()

    def test_tool_failure_keeps_existing_output(self, container_path, key_database, fetcher, tmp_path) -> None:
        """A file already at the output path survives a failed decrypt."""
        out_dir = tmp_path / "out"
        out_dir.mkdir()
        existing = out_dir / "archive"
        existing.write_bytes(b"user data")
        tool = FakeTool(output=None, fail=True)
        client = AEAClient(database=key_database, fetcher=fetcher, tool=tool)

        with pytest.raises(DecryptError) as excinfo:
            client.decrypt(container_path, out_dir)

        assert excinfo.value.phase == "decrypt"
        assert existing.read_bytes() == b"user data"

    def test_missing_input_file(self, tmp_path, fetcher) -> None:
        tool = FakeTool()
        client = AEAClient(database=KeyDatabase({}), fetcher=fetcher, tool=tool)

        with pytest.raises(DecryptError) as excinfo:
            client.decrypt(tmp_path / "missing.aea", tmp_path)

        assert excinfo.value.phase == "parse"
        assert tool.calls == []


class TestOutputPath:
    """Test output path computation."""

    @pytest.mark.parametrize(
        "input_path, expected",
        [
            ("/data/iPhone_Restore.dmg.aea", "iPhone_Restore.dmg"),
            ("archive.aea", "archive"),
            ("/data/noext", "noext"),
            ("/data.d/file", "file"),
        ],
    )
    def test_strips_extension(self, input_path: str, expected: str) -> None:
        assert output_path_for(input_path, "/out") == os.path.join("/out", expected)


class TestAEATool:
    """Test the aea binary wrapper."""

    def test_command_line(self) -> None:
        tool = AEATool(platform="darwin")

        assert tool.command("in.aea", "out", "S0VZ") == [
            "/usr/bin/aea",
            "decrypt",
            "-i",
            "in.aea",
            "-o",
            "out",
            "-key-value",
            "base64:S0VZ",
        ]

    def test_platform_gate(self) -> None:
        assert AEATool(platform="darwin").is_supported()
        assert not AEATool(platform="linux").is_supported()

        with pytest.raises(UnsupportedPlatformError):
            AEATool(platform="win32").decrypt("in.aea", "out", "S0VZ")

    def test_success(self, monkeypatch) -> None:
        seen = []

        def fake_run(args, **kwargs):
            seen.append((args, kwargs))
            return subprocess.CompletedProcess(args, 0, stdout=b"")

        monkeypatch.setattr(subprocess, "run", fake_run)
        tool = AEATool(platform="darwin")

        assert tool.decrypt("in.aea", "out", "S0VZ") == "out"
        args, kwargs = seen[0]
        assert args[-1] == "base64:S0VZ"
        assert kwargs["stderr"] == subprocess.STDOUT

    def test_failure_surfaces_output(self, monkeypatch) -> None:
        def fake_run(args, **kwargs):
            return subprocess.CompletedProcess(args, 1, stdout=b"Error: invalid key\n")

        monkeypatch.setattr(subprocess, "run", fake_run)

        with pytest.raises(CollaboratorError) as excinfo:
            AEATool(platform="darwin").decrypt("in.aea", "out", "S0VZ")

        assert excinfo.value.returncode == 1
        assert excinfo.value.output == "Error: invalid key\n"

    def test_missing_binary(self, monkeypatch) -> None:
        def fake_run(args, **kwargs):
            raise FileNotFoundError(2, "No such file or directory", args[0])

        monkeypatch.setattr(subprocess, "run", fake_run)

        with pytest.raises(CollaboratorError, match="No such file"):
            AEATool(binary="/nope/aea", platform="darwin").decrypt("in.aea", "out", "S0VZ")
