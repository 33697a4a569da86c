# Overview: Document and transaction identifiers for the procurement ledger.

"""
Identifier Service

FORMATS:
- Purchases:    PUR-<epoch millis>
- Transactions: TRX-<epoch millis>-<n>, n counting from 1 within one operation
- Workflow:     WF-<epoch millis>

The millisecond clock is read through time_utils.epoch_millis so tests can
monkeypatch a fixed value.
"""

from __future__ import annotations

from .. import time_utils


PURCHASE_PREFIX = "PUR"
TRANSACTION_PREFIX = "TRX"
WORKFLOW_PREFIX = "WF"


def new_purchase_id() -> str:
    return f"{PURCHASE_PREFIX}-{time_utils.epoch_millis()}"


def new_transaction_ids(count: int) -> list[str]:
    """Return `count` transaction ids sharing one timestamp."""
    stamp = time_utils.epoch_millis()
    return [f"{TRANSACTION_PREFIX}-{stamp}-{n}" for n in range(1, count + 1)]


def new_workflow_id() -> str:
    return f"{WORKFLOW_PREFIX}-{time_utils.epoch_millis()}"
