#!/usr/bin/env python3
"""Imprime el hash bcrypt de cada contraseña recibida (carga manual de usuarios)."""
from __future__ import annotations

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.append(str(ROOT))

from ceats.services.auth import hash_password  # noqa: E402


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Genera hashes bcrypt.")
    parser.add_argument("passwords", nargs="+", help="Contraseñas a hashear")
    return parser.parse_args()


def main() -> int:
    for password in parse_args().passwords:
        print(f"{password} -> {hash_password(password)}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
