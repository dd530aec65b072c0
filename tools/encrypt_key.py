#!/usr/bin/env python3
"""Produce an ENCRYPT_PRIVATE_KEY value for the merge worker."""
from __future__ import annotations

import argparse
import getpass
import sys
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from polymarket_merger.keys import KeyDecryptionError, decrypt_private_key, encrypt_private_key  # noqa: E402


def main() -> int:
    parser = argparse.ArgumentParser(description="Encrypt a wallet private key with a password")
    parser.add_argument("--key", default=None, help="Private key (prompted when omitted)")
    args = parser.parse_args()

    private_key = args.key or getpass.getpass("Private key: ")
    password = getpass.getpass("Password: ")
    if password != getpass.getpass("Repeat password: "):
        print("Passwords do not match", file=sys.stderr)
        return 1

    encrypted = encrypt_private_key(private_key.strip(), password)
    try:
        decrypt_private_key(encrypted, password)
    except KeyDecryptionError as exc:
        print(f"Key check failed: {exc}", file=sys.stderr)
        return 1
    print(f"ENCRYPT_PRIVATE_KEY={encrypted}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
