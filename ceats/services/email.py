from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage

from ceats.core.config import SMTP_FROM, SMTP_HOST, SMTP_PASSWORD, SMTP_PORT, SMTP_USE_TLS, SMTP_USER

logger = logging.getLogger(__name__)

BRAND = "cEats"


def send_email(*, to: str, subject: str, body: str) -> bool:
    """Envío best-effort: nunca levanta, devuelve False si no se pudo enviar."""
    if not SMTP_HOST or not SMTP_USER:
        logger.info("SMTP no configurado, se omite email a=%s asunto=%s", to, subject)
        return False

    message = EmailMessage()
    message["From"] = SMTP_FROM or SMTP_USER
    message["To"] = to
    message["Subject"] = subject
    message.set_content(body)

    try:
        with smtplib.SMTP(SMTP_HOST, SMTP_PORT, timeout=15) as smtp:
            if SMTP_USE_TLS:
                smtp.starttls()
            smtp.login(SMTP_USER, SMTP_PASSWORD)
            smtp.send_message(message)
    except (smtplib.SMTPException, OSError):
        logger.exception("Error enviando email a=%s asunto=%s", to, subject)
        return False

    logger.info("Email enviado a=%s asunto=%s", to, subject)
    return True


def send_verification_email(email: str, nombre: str, code: str) -> bool:
    body = (
        f"Hola {nombre},\n\n"
        f"Tu código de verificación es: {code}\n\n"
        "El código expira en 24 horas.\n\n"
        f"Equipo {BRAND}"
    )
    return send_email(to=email, subject=f"{BRAND} - Verificación de Email", body=body)


def send_welcome_email(email: str, nombre: str) -> bool:
    body = (
        f"¡Hola {nombre}!\n\n"
        "Tu cuenta ha sido verificada y tu registro está completo. "
        "Ya puedes iniciar sesión y dar de alta tus sucursales.\n\n"
        f"Equipo {BRAND}"
    )
    return send_email(to=email, subject=f"{BRAND} - ¡Registro Completado!", body=body)


def send_sucursal_verification_email(email: str, nombre_sucursal: str, code: str) -> bool:
    body = (
        f"Se registró la sucursal \"{nombre_sucursal}\".\n\n"
        f"Código de verificación: {code}\n\n"
        "Al verificarla se creará un usuario para la sucursal con este mismo código "
        "como contraseña temporal. Se pedirá cambiarla en el primer inicio de sesión.\n\n"
        f"Equipo {BRAND}"
    )
    return send_email(to=email, subject=f"{BRAND} - Verificación de Sucursal", body=body)
