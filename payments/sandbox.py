"""
In-memory payment provider for local development and tests.

Payment requests get a ``sandbox-`` id and a link under ``FRONTEND_BASE_URL``;
their state starts as ``CREATED`` and only changes through ``set_state``.
"""

from __future__ import annotations

import logging
import threading
import uuid
from decimal import Decimal
from typing import Any, Dict

from django.conf import settings

logger = logging.getLogger(__name__)


class SandboxPaymentProvider:
    _states: Dict[str, str] = {}
    _lock = threading.Lock()

    def create_payment_request(
        self,
        amount: Decimal,
        currency: str,
        customer,
        *,
        reference: str,
        recurring: bool,
    ) -> Dict[str, Any]:
        payment_id = f"sandbox-{uuid.uuid4().hex[:20]}"
        with self._lock:
            self._states[payment_id] = "CREATED"
        kind = "agreement" if recurring else "request"
        logger.info("Sandbox payment %s %s created for %s (%s %s)", kind, payment_id, reference, amount, currency)
        return {
            "id": payment_id,
            "link": f"{settings.FRONTEND_BASE_URL.rstrip('/')}/pay/{kind}/{payment_id}",
        }

    def get_payment_status(self, payment_id: str) -> Dict[str, Any]:
        with self._lock:
            state = self._states.get(payment_id)
        if state is None:
            return {"success": False, "error": f"Unknown payment {payment_id}."}
        return {"success": True, "data": {"id": payment_id, "state": state}}

    @classmethod
    def set_state(cls, payment_id: str, state: str) -> None:
        with cls._lock:
            cls._states[payment_id] = state

    @classmethod
    def reset(cls) -> None:
        with cls._lock:
            cls._states.clear()
