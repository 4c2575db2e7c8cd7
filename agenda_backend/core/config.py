import os
from decimal import Decimal


def _get_list(value: str | None, default: list[str]) -> list[str]:
    if not value:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]


APP_ENV = os.getenv("APP_ENV", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

CORS_ORIGINS = _get_list(os.getenv("CORS_ORIGINS"), ["http://localhost:5173"])

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = int(os.getenv("JWT_EXPIRES_MINUTES", "60"))

FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")
API_URL = os.getenv("API_URL", "http://localhost:8000")

MP_ACCESS_TOKEN = os.getenv("MP_ACCESS_TOKEN", "")
MP_API_BASE_URL = os.getenv("MP_API_BASE_URL", "https://api.mercadopago.com")
MP_TIMEOUT_SECONDS = float(os.getenv("MP_TIMEOUT_SECONDS", "5"))
MP_WEBHOOK_SECRET = os.getenv("MP_WEBHOOK_SECRET", "")
MP_STATEMENT_DESCRIPTOR = os.getenv("MP_STATEMENT_DESCRIPTOR", "AGENDA PROFISSIONAL")

AGENDA_SUBSCRIPTION_PRICE = Decimal(os.getenv("AGENDA_SUBSCRIPTION_PRICE", "49.90"))
AGENDA_SUBSCRIPTION_DAYS = int(os.getenv("AGENDA_SUBSCRIPTION_DAYS", "30"))
AGENDA_SUBSCRIPTION_DESCRIPTION = os.getenv(
    "AGENDA_SUBSCRIPTION_DESCRIPTION",
    "Acesso completo à agenda profissional por 30 dias",
)
AGENDA_REFERENCE_DOMAIN = os.getenv("AGENDA_REFERENCE_DOMAIN", "agenda")

MAX_SLOT_RANGE_DAYS = int(os.getenv("MAX_SLOT_RANGE_DAYS", "31"))


def validate_runtime_config() -> None:
    if APP_ENV.lower() != "production":
        return
    if JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")
    if not MP_ACCESS_TOKEN:
        raise RuntimeError("MP_ACCESS_TOKEN must be set in production.")
