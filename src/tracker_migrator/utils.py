"""
Utility functions for the GitLab tracker migration tool.
"""

from __future__ import annotations

import logging
import os
import re
import subprocess
from subprocess import CompletedProcess


class PassError(Exception):
    """Base class for pass-related errors."""


class InvalidPassPathError(PassError):
    """Raised when the pass path format is invalid."""


class PassphraseRequiredError(PassError):
    """Raised when a GPG passphrase is required for the pass utility."""


def setup_logging(*, verbose: bool = False, log_file: str | None = "migration.log") -> None:
    """Configure logging for the migration process."""
    level = logging.DEBUG if verbose else logging.INFO
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file, mode="a"))
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(levelname)s - %(message)s",
        handlers=handlers,
    )


def _validate_pass_path(pass_path: str) -> None:
    if not re.fullmatch(r"(?:[A-Za-z0-9_-]+)(?:/[A-Za-z0-9_-]+)*", pass_path):
        msg = f"Invalid pass path: {pass_path}"
        raise ValueError(msg)


def _failure_message(prefix: str, error: subprocess.CalledProcessError) -> str:
    return (
        f"{prefix}\n"
        f"Output: {error.stdout.strip()}\n"
        f"Error: {error.stderr.strip()}\n"
        f"Return code: {error.returncode}"
    )


def get_pass_value(pass_path: str) -> str:
    """Get value from pass utility at specified path."""
    _validate_pass_path(pass_path)

    try:
        result: CompletedProcess[str] = subprocess.run(  # noqa: S603
            ["pass", pass_path], capture_output=True, text=True, check=True
        )
    except subprocess.CalledProcessError as e:
        stderr = e.stderr.lower()
        if e.returncode == 1 and "not in the password store" in stderr:
            msg = f"Pass path '{pass_path}' not found or invalid."
            raise InvalidPassPathError(msg) from e
        if not (e.returncode == 2 and "gpg" in stderr and "public key decryption failed" in stderr):
            raise PassError(_failure_message(f"Failed to get value from pass at '{pass_path}'.", e)) from e

        # Likely the GPG key needs a passphrase. This fails in non-interactive sessions (e.g. pytest).
        try:
            passphrase = input("Enter passphrase for GPG key used by pass: ")
        except EOFError as eof:
            msg = "Passphrase input was interrupted. Please run the command in an interactive session."
            raise PassphraseRequiredError(msg) from eof

        env = os.environ.copy() | {"PASSWORD_STORE_GPG_OPTS": "--pinentry-mode=loopback --passphrase-fd 0"}
        try:
            result = subprocess.run(  # noqa: S603
                ["pass", pass_path], input=passphrase, capture_output=True, text=True, check=True, env=env
            )
        except subprocess.CalledProcessError as retry_error:
            msg = _failure_message(f"Failed to get value from pass at '{pass_path}' with passphrase.", retry_error)
            raise PassphraseRequiredError(msg) from retry_error

    return result.stdout.strip()
