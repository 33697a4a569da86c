from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import AppSettingRecord
from .persistence_service import PersistenceError
from ..domain import Balances
from .pricing_service import TAX_POLICIES, ConfigurationError, PricingContext, ensure_finite


KEY_EXCHANGE_RATE = "exchange_rate"
KEY_VAT_RATE = "vat_rate"
KEY_TOLERANCE_USD = "tolerance_usd"
KEY_IMPORT_TAX_POLICY = "import_tax_policy"
KEY_OPENING_CASH_USD = "opening_cash_usd"
KEY_OPENING_CASH_UZS = "opening_cash_uzs"
KEY_OPENING_CARD_UZS = "opening_card_uzs"
KEY_OPENING_BANK_UZS = "opening_bank_uzs"

# setting key -> Flask config key holding its default
DEFAULTS_FROM_CONFIG = {
    KEY_EXCHANGE_RATE: "DEFAULT_EXCHANGE_RATE",
    KEY_VAT_RATE: "VAT_RATE",
    KEY_TOLERANCE_USD: "PAYMENT_TOLERANCE_USD",
    KEY_IMPORT_TAX_POLICY: "IMPORT_TAX_POLICY",
    KEY_OPENING_CASH_USD: "OPENING_CASH_USD",
    KEY_OPENING_CASH_UZS: "OPENING_CASH_UZS",
    KEY_OPENING_CARD_UZS: "OPENING_CARD_UZS",
    KEY_OPENING_BANK_UZS: "OPENING_BANK_UZS",
}
OPENING_BALANCE_KEYS = {
    KEY_OPENING_CASH_USD,
    KEY_OPENING_CASH_UZS,
    KEY_OPENING_CARD_UZS,
    KEY_OPENING_BANK_UZS,
}
NUMERIC_KEYS = {KEY_EXCHANGE_RATE, KEY_VAT_RATE, KEY_TOLERANCE_USD} | OPENING_BALANCE_KEYS


class SettingsError(ValueError):
    pass


class SettingsValidationError(SettingsError):
    pass


def _parse_value(key: str, raw):
    if key in NUMERIC_KEYS:
        if isinstance(raw, bool):
            raise SettingsValidationError(f"{key} must be a number")
        try:
            return ensure_finite(str(raw).replace(",", ".") if isinstance(raw, str) else raw, key)
        except ConfigurationError as e:
            raise SettingsValidationError(str(e))
    return str(raw).strip().lower()


def get_settings() -> dict:
    """Effective settings: config defaults overridden by app_settings rows."""
    values = {key: current_app.config[cfg] for key, cfg in DEFAULTS_FROM_CONFIG.items()}
    for row in db.session.query(AppSettingRecord).all():
        if row.key in values and row.value is not None:
            values[row.key] = _parse_value(row.key, row.value)
    return values


def get_pricing_context() -> PricingContext:
    """
    Pricing context for the current request.

    Raises:
        ConfigurationError: stored or configured values are unusable
    """
    values = get_settings()
    return PricingContext(
        exchange_rate=values[KEY_EXCHANGE_RATE],
        vat_rate=values[KEY_VAT_RATE],
        tolerance_usd=values[KEY_TOLERANCE_USD],
        import_tax_policy=values[KEY_IMPORT_TAX_POLICY],
    )


def get_opening_balances() -> Balances:
    """Balances before the first transaction (config defaults or overrides)."""
    values = get_settings()
    return Balances(
        cash_usd=values[KEY_OPENING_CASH_USD],
        cash_uzs=values[KEY_OPENING_CASH_UZS],
        card_uzs=values[KEY_OPENING_CARD_UZS],
        bank_uzs=values[KEY_OPENING_BANK_UZS],
    )


def update_settings(updates: dict) -> dict:
    """
    Validate and store overrides.

    All values are checked together by building a PricingContext before
    anything is written.

    Raises:
        SettingsValidationError: unknown key or invalid value
        PersistenceError: the database write failed
    """
    if not isinstance(updates, dict) or not updates:
        raise SettingsValidationError("No settings provided")

    unknown = sorted(set(updates) - set(DEFAULTS_FROM_CONFIG))
    if unknown:
        raise SettingsValidationError(f"Unknown settings: {', '.join(unknown)}")

    parsed = {key: _parse_value(key, value) for key, value in updates.items()}
    for key in OPENING_BALANCE_KEYS & set(parsed):
        if parsed[key] < 0:
            raise SettingsValidationError(f"{key} cannot be negative")
    if KEY_IMPORT_TAX_POLICY in parsed and parsed[KEY_IMPORT_TAX_POLICY] not in TAX_POLICIES:
        raise SettingsValidationError(
            f"import_tax_policy must be one of: {', '.join(sorted(TAX_POLICIES))}"
        )

    merged = {**get_settings(), **parsed}
    try:
        PricingContext(
            exchange_rate=merged[KEY_EXCHANGE_RATE],
            vat_rate=merged[KEY_VAT_RATE],
            tolerance_usd=merged[KEY_TOLERANCE_USD],
            import_tax_policy=merged[KEY_IMPORT_TAX_POLICY],
        )
    except ConfigurationError as e:
        raise SettingsValidationError(str(e))

    try:
        existing = {
            row.key: row
            for row in db.session.query(AppSettingRecord).filter(AppSettingRecord.key.in_(list(parsed))).all()
        }
        for key, value in parsed.items():
            row = existing.get(key)
            if row is None:
                db.session.add(AppSettingRecord(key=key, value=str(value)))
            else:
                row.value = str(value)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise PersistenceError(f"Could not save settings: {e}")

    return get_settings()
