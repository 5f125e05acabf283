# currency/views.py

from decimal import Decimal, InvalidOperation

from rest_framework import status, viewsets
from rest_framework.decorators import api_view
from rest_framework.response import Response

from .converter import convert, get_exchange_rates
from .models import Currency, ExchangeRate
from .serializers import CurrencySerializer, ExchangeRateSerializer


class CurrencyViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = Currency.objects.filter(is_active=True)
    serializer_class = CurrencySerializer


class ExchangeRateViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = ExchangeRate.objects.select_related("base_currency", "target_currency")
    serializer_class = ExchangeRateSerializer


@api_view(['GET'])
def convert_currency(request):
    from_currency = request.GET.get("from")
    to_currency = request.GET.get("to")
    amount = request.GET.get("amount")

    if not all([from_currency, to_currency, amount]):
        return Response({"error": "Missing parameters."}, status=status.HTTP_400_BAD_REQUEST)

    try:
        amount = Decimal(amount)
        if not amount.is_finite():
            raise InvalidOperation(amount)
    except InvalidOperation:
        return Response({"error": "Invalid amount format."}, status=status.HTTP_400_BAD_REQUEST)

    rates = get_exchange_rates()
    converted = convert(amount, from_currency.upper(), to_currency.upper(), rates)
    return Response({
        "from": from_currency.upper(),
        "to": to_currency.upper(),
        "amount": str(amount),
        "converted_amount": str(converted.quantize(Decimal("0.01"))),
        "base": rates.base,
        "rates_live": rates.success,
        "last_updated": rates.last_updated,
    })
