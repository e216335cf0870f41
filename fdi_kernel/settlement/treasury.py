"""
Treasury — administrative withdrawal of the pool balance.

Sits outside the claim decision logic; only an administrator may call it.
"""

import logging
import time
from typing import Optional

from fdi_kernel.audit.ledger import AuditLedger
from fdi_kernel.authorization.roles import WITHDRAW_ROLES, Caller, require_role
from fdi_kernel.errors import SettlementFailure
from fdi_kernel.models.events import EventKind
from fdi_kernel.models.settlement import SettlementReceipt
from fdi_kernel.settlement.gateway import SettlementGateway

logger = logging.getLogger(__name__)


class Treasury:
    def __init__(self, gateway: SettlementGateway, ledger: AuditLedger):
        self.gateway = gateway
        self.ledger = ledger

    def withdraw_all(
        self,
        caller: Caller,
        destination: str,
        now: Optional[int] = None,
    ) -> SettlementReceipt:
        """Move the whole pool balance to destination. Raises SettlementFailure on failure."""
        require_role(caller, *WITHDRAW_ROLES)
        try:
            receipt = self.gateway.withdraw_all(destination)
        except Exception as e:
            logger.warning("Withdrawal to %s raised: %s", destination, e)
            raise SettlementFailure(f"Withdrawal to {destination} failed: {e}") from e

        if not receipt.success:
            logger.warning("Withdrawal to %s failed: %s", destination, receipt.error)
            raise SettlementFailure(
                f"Withdrawal to {destination} failed: {receipt.error}"
            )

        logger.info("Withdrew %d to %s", receipt.amount, destination)
        self.ledger.emit(
            EventKind.FUNDS_WITHDRAWN,
            occurred_at=int(time.time()) if now is None else now,
            destination=destination,
            amount=receipt.amount,
            reference=receipt.reference,
            requested_by=caller.id,
        )
        return receipt
