# currency/serializers.py

from rest_framework import serializers
from .models import Currency, ExchangeRate

class CurrencySerializer(serializers.ModelSerializer):
    class Meta:
        model = Currency
        fields = ('id', 'code', 'name', 'symbol', 'is_active')

class ExchangeRateSerializer(serializers.ModelSerializer):
    base_currency = serializers.CharField(source='base_currency.code', read_only=True)
    target_currency = serializers.CharField(source='target_currency.code', read_only=True)

    class Meta:
        model = ExchangeRate
        fields = ('id', 'base_currency', 'target_currency', 'rate', 'updated_at')
