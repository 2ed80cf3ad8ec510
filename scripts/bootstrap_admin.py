#!/usr/bin/env python3
from __future__ import annotations

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.append(str(ROOT))

from ceats.core.config import IS_DEV  # noqa: E402
from ceats.core.database import Base, SessionLocal, engine  # noqa: E402
import ceats.models  # noqa: E402,F401
from ceats.models.restaurante import Restaurante  # noqa: E402
from ceats.models.usuario import Usuario  # noqa: E402
from ceats.services.auth import hash_password  # noqa: E402
from ceats.services.authorization_service import Role  # noqa: E402


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Crea un restaurante con su admin ya verificado (DEV).")
    parser.add_argument("--restaurante", required=True, help="Nombre del restaurante")
    parser.add_argument("--email", required=True, help="Email del admin")
    parser.add_argument("--password", required=True, help="Contraseña del admin")
    parser.add_argument("--nombre", default="Admin", help="Nombre del admin")
    parser.add_argument("--force", action="store_true", help="Permite ejecutar fuera de DEV")
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    if not IS_DEV and not args.force:
        print("Bootstrap sólo disponible en DEV. Usa --force para ejecutarlo igual.")
        return 1
    if len(args.password) < 6:
        print("La contraseña debe tener al menos 6 caracteres")
        return 1

    Base.metadata.create_all(bind=engine)
    email = args.email.strip().lower()
    db = SessionLocal()
    try:
        if db.query(Usuario).filter(Usuario.email == email).first():
            print(f"Ya existe un usuario con email {email}")
            return 1
        restaurante = Restaurante(
            nombre=args.restaurante,
            nombre_contacto_legal=args.nombre,
            email_contacto_legal=email,
            telefono_contacto_legal="0000000000",
            direccion_fiscal="Sin dirección",
        )
        db.add(restaurante)
        db.flush()
        admin = Usuario(
            restaurante_id=restaurante.restaurante_id,
            nombre=args.nombre,
            apellidos="",
            email=email,
            password_hash=hash_password(args.password),
            role=Role.ADMIN.value,
            is_email_verified=True,
        )
        db.add(admin)
        db.commit()
        print(f"Admin creado: restaurante={restaurante.restaurante_id} email={admin.email}")
    finally:
        db.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
