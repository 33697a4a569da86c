# backend/metaltrade/config.py
from __future__ import annotations
import os


def _float_env(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return float(raw.replace(",", "."))


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///metaltrade.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Pricing defaults; rows in app_settings override these at runtime
    DEFAULT_EXCHANGE_RATE = _float_env("DEFAULT_EXCHANGE_RATE", 12800.0)  # UZS per 1 USD
    VAT_RATE = _float_env("VAT_RATE", 12.0)  # percent
    PAYMENT_TOLERANCE_USD = _float_env("PAYMENT_TOLERANCE_USD", 0.1)

    # "capitalize": customs duty and import VAT are part of landed cost
    # "expense": only logistics and other overheads are spread onto stock
    IMPORT_TAX_POLICY = os.environ.get("IMPORT_TAX_POLICY", "capitalize")

    # Till/account balances before the first recorded transaction
    OPENING_CASH_USD = _float_env("OPENING_CASH_USD", 0.0)
    OPENING_CASH_UZS = _float_env("OPENING_CASH_UZS", 0.0)
    OPENING_CARD_UZS = _float_env("OPENING_CARD_UZS", 0.0)
    OPENING_BANK_UZS = _float_env("OPENING_BANK_UZS", 0.0)

    # Dev frontends allowed to call the API from the browser
    CORS_ORIGINS = {
        "http://localhost:5173",
        "http://127.0.0.1:5173",
        "http://localhost:4173",
        "http://127.0.0.1:4173",
    }
