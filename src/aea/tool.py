"""Wrapper around the macOS ``aea`` command line utility."""

import logging
import subprocess
import sys
from typing import Optional

from .types import (
    DEFAULT_AEA_BINARY,
    SUPPORTED_PLATFORMS,
    CollaboratorError,
    UnsupportedPlatformError,
)

logger = logging.getLogger(__name__)


class AEATool:
    """
    Decrypts AEA archive bodies with the platform ``aea`` binary.

    Only macOS ships the binary, so every other platform is rejected
    before anything is executed.
    """

    def __init__(self, binary: str = DEFAULT_AEA_BINARY, platform: Optional[str] = None) -> None:
        self.binary = binary
        self.platform = platform or sys.platform

    def is_supported(self) -> bool:
        """Whether the current platform provides the aea binary."""
        return self.platform in SUPPORTED_PLATFORMS

    def ensure_supported(self) -> None:
        """
        Raises:
            UnsupportedPlatformError: If the platform has no aea binary
        """
        if not self.is_supported():
            raise UnsupportedPlatformError(self.platform)

    def command(self, input_path: str, output_path: str, key: str) -> list[str]:
        """Build the decrypt command line."""
        return [
            self.binary,
            "decrypt",
            "-i",
            input_path,
            "-o",
            output_path,
            "-key-value",
            f"base64:{key}",
        ]

    def decrypt(self, input_path: str, output_path: str, key: str) -> str:
        """
        Decrypt an archive.

        Args:
            input_path: Encrypted .aea file
            output_path: Destination of the decrypted archive
            key: Archive key as base64 text

        Returns:
            The output path

        Raises:
            UnsupportedPlatformError: If the platform has no aea binary
            CollaboratorError: If aea is missing or exits non-zero
        """
        self.ensure_supported()

        logger.info("Decrypting %s to %s", input_path, output_path)
        try:
            result = subprocess.run(
                self.command(input_path, output_path, key),
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                check=False,
            )
        except OSError as e:
            raise CollaboratorError(-1, str(e)) from e

        if result.returncode != 0:
            raise CollaboratorError(
                result.returncode, result.stdout.decode("utf-8", errors="replace")
            )
        return output_path
