"""Application service: maintenance sweep.

Run periodically.  Expires overdue campaigns that saw no contribution
traffic, then retries any completion or refund work a listener did not
finish.  Each step only acts on durable campaign state, so running the
sweep twice, or concurrently with the listeners, is safe.
"""

from __future__ import annotations

import structlog

from giftflow.application.dto import SweepReport
from giftflow.application.fulfillment_trigger import FulfillmentTrigger
from giftflow.application.refund_coordinator import RefundCoordinator
from giftflow.domain.service.funding_ledger import FundingLedger

logger = structlog.get_logger(__name__)


class SweepHandler:

    def __init__(
        self,
        ledger: FundingLedger,
        trigger: FulfillmentTrigger,
        refunds: RefundCoordinator,
    ) -> None:
        self._ledger = ledger
        self._trigger = trigger
        self._refunds = refunds

    def handle(self) -> SweepReport:
        expired = self._ledger.sweep_overdue()
        fulfilled, failed = self._trigger.run_pending()
        refunded: list[str] = []
        for outcome in self._refunds.run_pending():
            if outcome.reconciled:
                refunded.append(outcome.campaign_id)
            else:
                failed.append(outcome.campaign_id)

        report = SweepReport(
            expired=expired, fulfilled=fulfilled, refunded=refunded, failed=failed
        )
        logger.info(
            "Sweep finished",
            expired=len(expired),
            fulfilled=len(fulfilled),
            refunded=len(refunded),
            failed=len(failed),
        )
        return report
