"""
Static currency catalog adapter - Implements CurrencyCatalog protocol.

Serves an immutable snapshot of the configured currencies and rates, so
admin edits to configuration never change behaviour mid-request.
"""

from collections.abc import Iterable, Mapping
from decimal import Decimal

from trustnet.config.settings import Settings


class StaticCurrencyCatalog:
    """
    Implements CurrencyCatalog protocol from a configuration snapshot.

    Rates are keyed "SOURCE_TARGET" (e.g. "AED_SDG").
    """

    def __init__(
        self,
        currencies: Iterable[str],
        rates: Mapping[str, Decimal],
        default_rate: Decimal = Decimal("1"),
    ) -> None:
        self._currencies = frozenset(code.upper() for code in currencies)
        self._rates = {key.upper(): Decimal(str(value)) for key, value in rates.items()}
        self._default_rate = Decimal(str(default_rate))

    @classmethod
    def from_settings(cls, settings: Settings) -> "StaticCurrencyCatalog":
        return cls(settings.supported_currencies, settings.exchange_rates, settings.default_rate)

    def supported_currencies(self) -> frozenset[str]:
        return self._currencies

    def rate(self, source: str, target: str) -> Decimal:
        return self._rates.get(f"{source.upper()}_{target.upper()}", self._default_rate)
