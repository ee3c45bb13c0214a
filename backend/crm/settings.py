import logging
import os

from dotenv import load_dotenv

load_dotenv()


def _csv(value: str) -> list[str]:
    return [v.strip() for v in value.split(",") if v.strip()]


DATABASE_URL = os.getenv("DATABASE_URL", "postgresql://postgres:postgres@db:5432/postgres")

# Bearer tokens are issued by the identity provider; we only verify them.
IDENTITY_JWT_SECRET = os.getenv("IDENTITY_JWT_SECRET") or os.getenv("SECRET_KEY") or "dev_change_me"
IDENTITY_JWT_ALGORITHMS = _csv(os.getenv("IDENTITY_JWT_ALGORITHMS", "HS256"))
IDENTITY_JWT_AUDIENCE = os.getenv("IDENTITY_JWT_AUDIENCE") or None
IDENTITY_JWT_ISSUER = os.getenv("IDENTITY_JWT_ISSUER") or None

IDENTITY_WEBHOOK_SECRET = os.getenv("IDENTITY_WEBHOOK_SECRET") or None
WEBHOOK_TOLERANCE_SECONDS = int(os.getenv("WEBHOOK_TOLERANCE_SECONDS", "300"))

SELLER_NAME = os.getenv("SELLER_NAME", "Your Company Name")
SELLER_ADDRESS = os.getenv("SELLER_ADDRESS", "123 Business Street, City, State ZIP")
SELLER_EMAIL = os.getenv("SELLER_EMAIL", "contact@yourcompany.com")

CORS_ORIGINS = _csv(os.getenv("CORS_ORIGINS", "http://localhost:3000"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


def configure_logging() -> None:
    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
