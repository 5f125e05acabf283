from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase, override_settings
from rest_framework.test import APITestCase

from currency.converter import ExchangeRates, convert, fallback_exchange_rates, get_exchange_rates
from currency.models import Currency, ExchangeRate

RATES = ExchangeRates(
    base="DKK",
    rates={"DKK": Decimal("1"), "EUR": Decimal("0.134"), "USD": Decimal("0.145")},
)


class ConvertTests(TestCase):
    def test_same_currency_returns_amount(self):
        self.assertEqual(convert(100, "DKK", "DKK", RATES), Decimal("100"))
        self.assertEqual(convert(100, "DKK", "DKK", None), Decimal("100"))
        self.assertEqual(convert(100, "EUR", "EUR", RATES), Decimal("100"))

    def test_missing_rates_returns_amount(self):
        self.assertEqual(convert(Decimal("42.50"), "DKK", "EUR", None), Decimal("42.50"))

    def test_from_base_multiplies(self):
        self.assertEqual(convert(100, "DKK", "EUR", RATES), Decimal("13.400"))

    def test_to_base_divides(self):
        self.assertEqual(convert(Decimal("13.4"), "EUR", "DKK", RATES), Decimal("100"))

    def test_cross_rate_goes_through_base(self):
        result = convert(Decimal("13.4"), "EUR", "USD", RATES)
        self.assertEqual(result.quantize(Decimal("0.01")), Decimal("14.50"))

    def test_round_trip_within_tolerance(self):
        for amount in (Decimal("1"), Decimal("99"), Decimal("1234.56")):
            there = convert(amount, "DKK", "EUR", RATES)
            back = convert(there, "EUR", "DKK", RATES)
            self.assertAlmostEqual(back, amount, places=6)

    def test_unknown_currency_returns_amount_unconverted(self):
        self.assertEqual(convert(100, "DKK", "SEK", RATES), Decimal("100"))
        self.assertEqual(convert(100, "SEK", "DKK", RATES), Decimal("100"))
        self.assertEqual(convert(100, "SEK", "EUR", RATES), Decimal("100"))

    def test_zero_rate_is_treated_as_missing(self):
        rates = ExchangeRates(base="DKK", rates={"EUR": Decimal("0")})
        self.assertEqual(convert(100, "EUR", "DKK", rates), Decimal("100"))


class ExchangeRateLookupTests(TestCase):
    @override_settings(FALLBACK_EXCHANGE_RATES={"DKK": 1, "EUR": 0.134})
    def test_falls_back_when_no_rates_stored(self):
        rates = get_exchange_rates("DKK")
        self.assertFalse(rates.success)
        self.assertEqual(rates.rate_for("EUR"), Decimal("0.134"))

    def test_reads_stored_rates(self):
        dkk = Currency.objects.create(code="DKK", name="Danish Krone", symbol="kr")
        eur = Currency.objects.create(code="EUR", name="Euro", symbol="€")
        ExchangeRate.objects.create(base_currency=dkk, target_currency=eur, rate=Decimal("0.13400000"))

        rates = get_exchange_rates("DKK")
        self.assertTrue(rates.success)
        self.assertEqual(rates.rate_for("EUR"), Decimal("0.134"))
        self.assertEqual(rates.rate_for("DKK"), Decimal("1"))
        self.assertIsNotNone(rates.last_updated)

    def test_fallback_always_contains_base(self):
        rates = fallback_exchange_rates("NOK")
        self.assertEqual(rates.rate_for("NOK"), Decimal("1"))


class ConvertEndpointTests(APITestCase):
    def setUp(self):
        self.user = get_user_model().objects.create_user(username="viewer", password="pass1234")
        self.client.force_authenticate(self.user)

    @override_settings(FALLBACK_EXCHANGE_RATES={"DKK": 1, "EUR": 0.134})
    def test_convert_uses_fallback_rates(self):
        response = self.client.get("/api/currency/convert/", {"from": "dkk", "to": "eur", "amount": "100"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["converted_amount"], "13.40")
        self.assertFalse(response.data["rates_live"])

    def test_convert_rejects_bad_amount(self):
        response = self.client.get("/api/currency/convert/", {"from": "DKK", "to": "EUR", "amount": "abc"})
        self.assertEqual(response.status_code, 400)
