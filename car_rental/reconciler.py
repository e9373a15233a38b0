import asyncio
import contextlib
import logging
from typing import Callable, List, Optional, Tuple

from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from car_rental.checkout import CheckoutClient, CheckoutSession
from car_rental.errors import CheckoutError
from car_rental.models import Payment

logger = logging.getLogger(__name__)


def settle(payment: Payment, session: CheckoutSession) -> bool:
    """Apply the provider's session status to a payment. Returns True if it changed.

    A paid session always wins, even over a payment already marked failed.
    """
    if session.is_paid:
        if payment.status == "completed":
            return False
        payment.status = "completed"
        return True
    if session.is_expired and payment.status == "pending":
        payment.status = "failed"
        return True
    return False


class PaymentReconciler:
    """Sweeps pending checkout payments against the provider's session status.

    Catches payments whose buyer never came back through the success or cancel
    redirect. Lookups that fail are left for the next sweep.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        checkout_client: CheckoutClient,
        interval: float = 60.0
    ):
        self.session_factory = session_factory
        self.checkout_client = checkout_client
        self.interval = interval
        self.is_running = False
        self._task: Optional[asyncio.Task] = None

    def _pending_sessions(self) -> List[Tuple[int, str]]:
        db = self.session_factory()
        try:
            rows = db.query(Payment.id, Payment.checkout_session_id).filter(
                Payment.status == "pending",
                Payment.checkout_session_id.isnot(None)
            ).order_by(Payment.id).all()
            return [(payment_id, session_id) for payment_id, session_id in rows]
        finally:
            db.close()

    def _apply(self, payment_id: int, session: CheckoutSession) -> bool:
        db = self.session_factory()
        try:
            payment = db.query(Payment).filter(Payment.id == payment_id).first()
            if not payment or not settle(payment, session):
                return False
            db.commit()
            logger.info(f"Payment {payment_id} reconciled as {payment.status}")
            return True
        finally:
            db.close()

    async def sweep(self) -> int:
        updated = 0
        for payment_id, session_id in await run_in_threadpool(self._pending_sessions):
            try:
                session = await self.checkout_client.get_session(session_id)
            except CheckoutError:
                logger.warning(f"Could not reconcile payment {payment_id}, retrying next sweep")
                continue

            if await run_in_threadpool(self._apply, payment_id, session):
                updated += 1
        return updated

    async def process(self):
        self.is_running = True
        logger.info("Payment reconciler started")

        while self.is_running:
            try:
                await self.sweep()
            except Exception as e:
                logger.error(f"Error reconciling payments: {str(e)}")
            await asyncio.sleep(self.interval)

    async def start(self):
        if not self.is_running:
            self._task = asyncio.create_task(self.process())

    async def stop(self):
        self.is_running = False
        if self._task:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
