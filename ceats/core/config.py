import os

from dotenv import load_dotenv

# Carga el .env de la raíz del proyecto
load_dotenv()


def _env_flag(name: str, default: str = "") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./ceats.db")
ENV = os.getenv("ENVIRONMENT", os.getenv("ENV", "dev"))
ENV_NORMALIZED = ENV.strip().lower()
IS_DEV = ENV_NORMALIZED in {"dev", "development", "local"}
IS_TEST = ENV_NORMALIZED == "test"
IS_PROD = ENV_NORMALIZED in {"prod", "production"}
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# CORS
_cors_env = os.getenv("CORS_ORIGINS", "")
CORS_ORIGINS = [origin.strip() for origin in _cors_env.split(",") if origin.strip() and origin.strip() != "*"]

if not CORS_ORIGINS and IS_DEV:
    CORS_ORIGINS = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:3001",
    ]

# Auth (JWT)
JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "")
if not JWT_SECRET_KEY:
    if IS_PROD:
        raise RuntimeError("JWT_SECRET_KEY es obligatorio en producción")
    JWT_SECRET_KEY = "dev-only-ceats-secret"
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRE_MINUTES = int(os.getenv("JWT_EXPIRE_MINUTES", "240"))

# Códigos de verificación (email de admin y sucursales)
VERIFICATION_CODE_TTL_HOURS = int(os.getenv("VERIFICATION_CODE_TTL_HOURS", "24"))

# SMTP
SMTP_HOST = os.getenv("SMTP_HOST", "").strip()
SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
SMTP_USER = os.getenv("SMTP_USER", "").strip()
SMTP_PASSWORD = os.getenv("SMTP_PASSWORD", "")
SMTP_FROM = os.getenv("SMTP_FROM", SMTP_USER).strip()
SMTP_USE_TLS = _env_flag("SMTP_USE_TLS", "1")

# WhatsApp / Facebook
FACEBOOK_APP_ID = os.getenv("FACEBOOK_APP_ID", "")
FACEBOOK_APP_SECRET = os.getenv("FACEBOOK_APP_SECRET", "")
FACEBOOK_CONFIG_ID = os.getenv("FACEBOOK_CONFIG_ID", "")
FACEBOOK_APP_ACCESS_TOKEN = os.getenv("FACEBOOK_APP_ACCESS_TOKEN", "")
META_API_VERSION = os.getenv("META_API_VERSION", "v20.0")
META_GRAPH_URL = os.getenv("META_GRAPH_URL", "https://graph.facebook.com").rstrip("/")
BASE_URL = os.getenv("BASE_URL", "http://localhost:8000").rstrip("/")
WHATSAPP_ENCRYPTION_KEY = os.getenv("WHATSAPP_ENCRYPTION_KEY", "")
EMBEDDED_SIGNUP_TTL_MINUTES = int(os.getenv("EMBEDDED_SIGNUP_TTL_MINUTES", "10"))

# Sincronización legacy de estados (vacío = deshabilitada)
LEGACY_SYNC_URL = os.getenv("LEGACY_SYNC_URL", "").strip()
LEGACY_SYNC_TIMEOUT_SECONDS = float(os.getenv("LEGACY_SYNC_TIMEOUT_SECONDS", "10"))
