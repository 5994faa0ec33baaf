"""
Command line front end for VaultDrop.

Offline commands (no storage needed):
  verifier --salt <b64>                       -> print the key verifier for a salt
  encrypt <in> <out>                          -> write ciphertext, print salt/nonce/verifier
  decrypt <in> <out> --salt <b64> --nonce <b64>

Storage commands (configured through the environment, see vaultdrop.core.config):
  upload <path> [--name NAME] [--mime TYPE]
  download <record_id> [out]
  delete <record_id>
  list

The encryption key is read from VAULTDROP_PASSPHRASE, or prompted for.
"""

from __future__ import annotations

import argparse
import getpass
import json
import logging
import mimetypes
import os
import sys
from pathlib import Path
from typing import Optional, Sequence

from vaultdrop.core.encoding import b64decode, b64encode
from vaultdrop.core.exceptions import AuthenticationFailedError, VaultDropError
from vaultdrop.frontend.cli.context import build_context
from vaultdrop.frontend.cli.logging_config import configure_logging
from vaultdrop.security.crypto import decrypt_with_passphrase, encrypt_with_passphrase
from vaultdrop.security.kdf import derive_verifier

PASSPHRASE_ENV = "VAULTDROP_PASSPHRASE"


def read_passphrase(prompt: str = "Encryption key: ") -> str:
    secret = os.getenv(PASSPHRASE_ENV)
    if secret:
        return secret
    return getpass.getpass(prompt)


def _print_json(obj) -> None:
    print(json.dumps(obj, indent=2))


def cmd_verifier(args) -> int:
    salt = b64decode(args.salt, "salt")
    print(derive_verifier(read_passphrase(), salt))
    return 0


def cmd_encrypt(args) -> int:
    data = Path(args.input).read_bytes()
    sealed = encrypt_with_passphrase(read_passphrase(), data)
    Path(args.output).write_bytes(sealed.ciphertext)
    _print_json({
        "salt": b64encode(sealed.salt),
        "nonce": b64encode(sealed.nonce),
        "key_verifier": sealed.verifier,
        "size": len(data),
    })
    return 0


def cmd_decrypt(args) -> int:
    ciphertext = Path(args.input).read_bytes()
    plaintext = decrypt_with_passphrase(
        read_passphrase(),
        ciphertext,
        b64decode(args.nonce, "nonce"),
        b64decode(args.salt, "salt"),
    )
    Path(args.output).write_bytes(plaintext)
    print(f"Decrypted {len(plaintext)} bytes to {args.output}")
    return 0


def cmd_upload(args) -> int:
    ctx = build_context(owner_id=args.owner)
    path = Path(args.path).expanduser()
    if not path.is_file():
        print(f"Local file not found: {path}", file=sys.stderr)
        return 1
    name = args.name or path.name
    mime = args.mime or mimetypes.guess_type(name)[0] or "application/octet-stream"
    record = ctx.vault.upload(ctx.owner_id, read_passphrase(), path.read_bytes(), name, mime)
    _print_json(record.to_public_dict())
    return 0


def cmd_download(args) -> int:
    ctx = build_context(owner_id=args.owner)
    record = ctx.lifecycle.get(ctx.owner_id, args.record_id)
    data = ctx.vault.download(ctx.owner_id, args.record_id, read_passphrase())
    out = args.output or (Path(record.display_name).name if record else args.record_id)
    Path(out).write_bytes(data)
    print(f"Saved {len(data)} bytes to {out}")
    return 0


def cmd_delete(args) -> int:
    ctx = build_context(owner_id=args.owner)
    record = ctx.lifecycle.get(ctx.owner_id, args.record_id)
    passphrase = read_passphrase() if record is not None and record.has_verifier else None
    if ctx.vault.delete(ctx.owner_id, args.record_id, passphrase):
        print(f"Deleted {args.record_id}")
    else:
        print(f"{args.record_id} was already deleted")
    return 0


def cmd_list(args) -> int:
    ctx = build_context(owner_id=args.owner)
    _print_json([r.to_public_dict() for r in ctx.lifecycle.list(ctx.owner_id)])
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="vaultdrop", description="Client-side encrypted object storage")
    parser.add_argument("--owner", help="owner id (defaults to the OS user)")
    parser.add_argument("-v", "--verbose", action="store_true", help="log progress to stderr")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("verifier", help="print the key verifier for a salt")
    p.add_argument("--salt", required=True, help="base64 salt (16 bytes)")
    p.set_defaults(func=cmd_verifier)

    p = sub.add_parser("encrypt", help="encrypt a local file")
    p.add_argument("input")
    p.add_argument("output")
    p.set_defaults(func=cmd_encrypt)

    p = sub.add_parser("decrypt", help="decrypt a local file")
    p.add_argument("input")
    p.add_argument("output")
    p.add_argument("--salt", required=True)
    p.add_argument("--nonce", required=True)
    p.set_defaults(func=cmd_decrypt)

    p = sub.add_parser("upload", help="encrypt and upload a file")
    p.add_argument("path")
    p.add_argument("--name", help="display name (defaults to the file name)")
    p.add_argument("--mime", help="MIME type (guessed from the name)")
    p.set_defaults(func=cmd_upload)

    p = sub.add_parser("download", help="download and decrypt a file")
    p.add_argument("record_id")
    p.add_argument("output", nargs="?")
    p.set_defaults(func=cmd_download)

    p = sub.add_parser("delete", help="delete a file")
    p.add_argument("record_id")
    p.set_defaults(func=cmd_delete)

    p = sub.add_parser("list", help="list your files")
    p.set_defaults(func=cmd_list)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(logging.INFO if args.verbose else logging.WARNING)
    try:
        return args.func(args)
    except AuthenticationFailedError:
        print("Error: wrong key or corrupted data", file=sys.stderr)
        return 1
    except VaultDropError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
