# Overview: Maps service exceptions to JSON error responses for the API routes.

from __future__ import annotations

from flask import jsonify

from .validation import ConflictError, ValidationError
from .services.payment_service import InsufficientFundsError
from .services.persistence_service import PersistenceError
from .services.pricing_service import ConfigurationError
from .services.purchase_service import PurchaseNotFoundError
from .services.settings_service import SettingsValidationError
from .services.workflow_service import WorkflowNotFoundError, WorkflowStateError


# Errors routes translate into 4xx/503 instead of logging a 500
SERVICE_ERRORS = (
    ValidationError,
    ConflictError,
    InsufficientFundsError,
    PersistenceError,
    ConfigurationError,
    PurchaseNotFoundError,
    SettingsValidationError,
    WorkflowNotFoundError,
    WorkflowStateError,
)


def json_error(exc: Exception):
    """
    Status codes:
    - 400 validation
    - 404 unknown purchase / line / workflow order
    - 409 insufficient funds (with account details), conflicts, workflow state
    - 422 configuration (bad exchange rate or VAT settings)
    - 503 persistence
    """
    if isinstance(exc, InsufficientFundsError):
        return jsonify(exc.to_dict()), 409
    if isinstance(exc, (PurchaseNotFoundError, WorkflowNotFoundError)):
        return jsonify({"error": str(exc)}), 404
    if isinstance(exc, (ConflictError, WorkflowStateError)):
        return jsonify({"error": str(exc)}), 409
    if isinstance(exc, ConfigurationError):
        return jsonify({"error": str(exc), "kind": "configuration"}), 422
    if isinstance(exc, PersistenceError):
        return jsonify({"error": str(exc)}), 503
    if isinstance(exc, (ValidationError, SettingsValidationError)):
        return jsonify({"error": str(exc)}), 400
    raise exc
