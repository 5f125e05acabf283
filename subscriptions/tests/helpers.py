from decimal import Decimal

from customers.models import Customer
from subscriptions.exceptions import NotificationError
from subscriptions.models import SubscriptionProduct


class FakeProvider:
    """Stands in for a payment provider adapter."""

    def __init__(self, *, state="CREATED", status_response=None, create_response=None, create_error=None):
        self.state = state
        self.status_response = status_response
        self.create_response = create_response
        self.create_error = create_error
        self.requests = []
        self.status_calls = []

    def create_payment_request(self, amount, currency, customer, *, reference, recurring):
        self.requests.append(
            {"amount": amount, "currency": currency, "customer": customer, "reference": reference, "recurring": recurring}
        )
        if self.create_error:
            raise self.create_error
        if self.create_response is not None:
            return self.create_response
        return {"id": f"pay-{len(self.requests)}", "link": f"https://pay.example.com/{len(self.requests)}"}

    def get_payment_status(self, payment_id):
        self.status_calls.append(payment_id)
        if self.status_response is not None:
            return self.status_response
        return {"success": True, "data": {"id": payment_id, "state": self.state}}


class FakeDispatcher:
    """Records reminder and agreement emails instead of sending them."""

    def __init__(self, *, fail=False):
        self.fail = fail
        self.reminders = []
        self.agreements = []

    def subscription_reminder(self, subscription, trigger, days_left):
        if self.fail:
            raise NotificationError("SMTP unavailable")
        self.reminders.append((subscription.pk, trigger, days_left))

    def payment_agreement(self, customer, **data):
        if self.fail:
            raise NotificationError("SMTP unavailable")
        self.agreements.append((customer.pk, data))


def make_customer(**overrides) -> Customer:
    fields = {"name": "Customer C", "email": "c@example.com", "phone_number": "+4512345678"}
    fields.update(overrides)
    return Customer.objects.create(**fields)


def make_product(**overrides) -> SubscriptionProduct:
    fields = {"name": "Product P", "price": Decimal("99.00"), "duration_months": 1}
    fields.update(overrides)
    return SubscriptionProduct.objects.create(**fields)
