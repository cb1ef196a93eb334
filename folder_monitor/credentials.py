"""Helpers for the base64-encoded SMTP password stored in the config file.

Usage:
    folder-monitor encode-password [--config PATH]
"""

import base64
import binascii
import getpass
import sys
from pathlib import Path


def encode_secret(plain: str) -> str:
    """Return the UTF-8 bytes of *plain* as base64 text."""
    return base64.b64encode(plain.encode("utf-8")).decode("ascii")


def decode_secret(encoded: str) -> str:
    """Reverse :func:`encode_secret`; raises ValueError on malformed input."""
    try:
        raw = base64.b64decode(encoded.strip(), validate=True)
    except binascii.Error as exc:
        raise ValueError(str(exc)) from exc
    return raw.decode("utf-8")


def main(config_path: Path | None = None) -> int:
    """Prompt for a password, print its encoding and optionally store it."""
    plain = getpass.getpass("Enter the password to encode: ")
    if not plain:
        print("Nothing entered.", file=sys.stderr)
        return 1

    encoded = encode_secret(plain)
    print(f"Encoded password: {encoded}")

    answer = input("Save this encoded password to the configuration file? (y/n): ")
    if answer.strip().lower() == "y":
        from folder_monitor.config import Config

        cfg = Config(config_path)
        cfg.smtp_password = encoded
        cfg.save()
        print(f"Password saved to {cfg.path}.")
    return 0
