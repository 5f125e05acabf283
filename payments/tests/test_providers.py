import time
from decimal import Decimal

from django.core.exceptions import ImproperlyConfigured
from django.test import SimpleTestCase, override_settings

from payments.providers import call_with_timeout, get_provider, reset_provider_cache
from payments.sandbox import SandboxPaymentProvider
from subscriptions.exceptions import ProviderError


class CallWithTimeoutTests(SimpleTestCase):
    def test_returns_result(self):
        self.assertEqual(call_with_timeout(lambda a, b=0: a + b, 1, b=2, timeout=1), 3)

    def test_timeout_raises_provider_error(self):
        with self.assertRaises(ProviderError):
            call_with_timeout(time.sleep, 0.5, timeout=0.05)

    def test_adapter_exception_becomes_provider_error(self):
        def boom():
            raise ConnectionError("reset by peer")

        with self.assertRaisesMessage(ProviderError, "reset by peer"):
            call_with_timeout(boom, timeout=1)

    def test_provider_error_passes_through(self):
        def fail():
            raise ProviderError("declined")

        with self.assertRaisesMessage(ProviderError, "declined"):
            call_with_timeout(fail, timeout=1)


class GetProviderTests(SimpleTestCase):
    def setUp(self):
        reset_provider_cache()
        self.addCleanup(reset_provider_cache)

    @override_settings(PAYMENT_PROVIDERS={"provider-manual": "payments.sandbox.SandboxPaymentProvider"})
    def test_loads_and_caches_adapter(self):
        provider = get_provider("provider-manual")
        self.assertIsInstance(provider, SandboxPaymentProvider)
        self.assertIs(get_provider("provider-manual"), provider)

    @override_settings(PAYMENT_PROVIDERS={"provider-manual": ""})
    def test_missing_adapter_is_improperly_configured(self):
        with self.assertRaises(ImproperlyConfigured):
            get_provider("provider-manual")

    @override_settings(PAYMENT_PROVIDERS={"provider-manual": "billing_missing.Provider"})
    def test_unimportable_adapter_is_improperly_configured(self):
        with self.assertRaisesMessage(ImproperlyConfigured, "cannot be imported"):
            get_provider("provider-manual")

    def test_manual_method_has_no_provider(self):
        with self.assertRaises(ImproperlyConfigured):
            get_provider("manual")


@override_settings(FRONTEND_BASE_URL="https://billing.example.com/")
class SandboxProviderTests(SimpleTestCase):
    def setUp(self):
        SandboxPaymentProvider.reset()
        self.provider = SandboxPaymentProvider()

    def test_payment_request_lifecycle(self):
        response = self.provider.create_payment_request(
            Decimal("99.00"), "DKK", None, reference="SUB-1", recurring=True
        )

        self.assertTrue(response["link"].startswith("https://billing.example.com/pay/agreement/"))
        status = self.provider.get_payment_status(response["id"])
        self.assertEqual(status["data"]["state"], "CREATED")

        SandboxPaymentProvider.set_state(response["id"], "COMPLETED")
        self.assertEqual(self.provider.get_payment_status(response["id"])["data"]["state"], "COMPLETED")

    def test_unknown_payment(self):
        self.assertFalse(self.provider.get_payment_status("missing")["success"])
