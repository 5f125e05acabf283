"""
Payment provider adapters.

The billing core never talks to a payment provider directly. Each provider-based
payment method is served by an adapter class configured in
``settings.PAYMENT_PROVIDERS`` (dotted path), exposing::

    create_payment_request(amount, currency, customer, *, reference, recurring) -> {"id", "link"}
    get_payment_status(payment_id) -> {"success": bool, "data": {"state": str}, "error": str}

Every adapter call goes through ``call_with_timeout`` so a hanging provider
cannot block a request or a worker indefinitely.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from decimal import Decimal
from typing import Any, Callable, Dict, Optional, Protocol

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from django.utils.module_loading import import_string

from subscriptions.exceptions import ProviderError
from subscriptions.models import PaymentMethod

logger = logging.getLogger(__name__)

_executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="payment-provider")
_provider_cache: Dict[str, "PaymentProvider"] = {}


class PaymentProvider(Protocol):
    def create_payment_request(
        self,
        amount: Decimal,
        currency: str,
        customer,
        *,
        reference: str,
        recurring: bool,
    ) -> Dict[str, Any]:
        ...

    def get_payment_status(self, payment_id: str) -> Dict[str, Any]:
        ...


def call_with_timeout(func: Callable, *args, timeout: Optional[float] = None, **kwargs):
    """Run a provider call, turning timeouts and adapter crashes into ProviderError."""
    if timeout is None:
        timeout = settings.PAYMENT_PROVIDER_TIMEOUT_SECONDS

    future = _executor.submit(func, *args, **kwargs)
    try:
        return future.result(timeout=timeout)
    except FutureTimeoutError as exc:
        future.cancel()
        logger.warning("Payment provider call %s timed out after %ss", getattr(func, "__name__", func), timeout)
        raise ProviderError(f"Payment provider did not answer within {timeout}s.") from exc
    except ProviderError:
        raise
    except Exception as exc:
        logger.warning("Payment provider call %s failed: %s", getattr(func, "__name__", func), exc)
        raise ProviderError(str(exc) or exc.__class__.__name__) from exc


def get_provider(payment_method: str) -> PaymentProvider:
    """Return the configured adapter instance for a provider-based payment method."""
    if payment_method not in PaymentMethod.provider_methods():
        raise ImproperlyConfigured(f"Payment method {payment_method!r} is not served by a provider.")

    backend_path = (getattr(settings, "PAYMENT_PROVIDERS", {}) or {}).get(payment_method)
    if not backend_path:
        raise ImproperlyConfigured(f"PAYMENT_PROVIDERS[{payment_method!r}] must be configured.")

    provider = _provider_cache.get(backend_path)
    if provider is None:
        try:
            backend = import_string(backend_path)
        except ImportError as exc:
            raise ImproperlyConfigured(f"PAYMENT_PROVIDERS[{payment_method!r}] cannot be imported: {exc}") from exc
        provider = backend()
        _provider_cache[backend_path] = provider
    return provider


def reset_provider_cache() -> None:
    _provider_cache.clear()
