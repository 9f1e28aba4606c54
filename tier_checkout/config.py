import os
from pathlib import Path
from dotenv import load_dotenv

# Force-load .env (Windows-safe, reload-safe)
BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(dotenv_path=BASE_DIR / ".env")

PAYPAL_CLIENT_ID = os.getenv("PAYPAL_CLIENT_ID", "")
PAYPAL_CLIENT_SECRET = os.getenv("PAYPAL_CLIENT_SECRET", "")
PAYPAL_ENV = os.getenv("PAYPAL_ENV", "sandbox").strip().lower()

PAYPAL_RETURN_URL = os.getenv("PAYPAL_RETURN_URL", "https://example.com/success")
PAYPAL_CANCEL_URL = os.getenv("PAYPAL_CANCEL_URL", "https://example.com/cancel")

DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{BASE_DIR / 'payments.db'}")

JWT_SECRET = os.getenv("JWT_SECRET")

# Upper bound for every remote call (credential exchange, create, capture, record write)
REMOTE_TIMEOUT_SECONDS = float(os.getenv("REMOTE_TIMEOUT_SECONDS", "10"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


def paypal_api_base(env: str = PAYPAL_ENV) -> str:
    if env in {"live", "production", "prod"}:
        return "https://api-m.paypal.com"
    return "https://api-m.sandbox.paypal.com"
