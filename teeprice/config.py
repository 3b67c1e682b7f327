# teeprice/config.py

import json
import os

from dotenv import load_dotenv

# ------------------------------------------------------------------
# ENV & CONFIG
# ------------------------------------------------------------------

load_dotenv()

# Shared secret for quote signatures. Empty means "not configured";
# the quote endpoints then answer 503 instead of signing with a guessable key.
QUOTE_SECRET = os.getenv("QUOTE_SECRET", "")
TAX_RATE = float(os.getenv("TAX_RATE", 0.16))
QUOTE_TTL_MINUTES = int(os.getenv("QUOTE_TTL_MINUTES", 10))
QUOTE_CURRENCY = (os.getenv("QUOTE_CURRENCY") or "USD").strip().upper()

LOG_LEVEL = (os.getenv("LOG_LEVEL") or "INFO").strip().upper()


def env_flag(name: str) -> bool:
    return str(os.getenv(name, "")).strip().lower() in {"1", "true", "yes"}


def load_promo_codes() -> dict:
    """
    Promo codes for the mock coupon service, as JSON:

      PROMO_CODES='{"WELCOME10": {"discount_type": "percentage", "discount_value": 10}}'

    Malformed JSON is treated as "no codes".
    """
    raw = (os.getenv("PROMO_CODES") or "").strip()
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except ValueError:
        return {}
    if not isinstance(data, dict):
        return {}
    return {str(k).strip().upper(): v for k, v in data.items() if isinstance(v, dict)}
