"""USD <-> VES conversion with historical, custom and market rate precedence"""

import math
from dataclasses import dataclass, field
from typing import Dict, Optional, Sequence, Union

from ledgerflow.domain.exceptions import InvalidArgumentError, InvalidRateError
from ledgerflow.domain.models import ConversionDirection, MarketRates, RateSource, ResolvedRate

DEFAULT_EXCHANGE_RATE = 36.5
DEFAULT_RATE_LABEL = "Sin datos recientes"
CONVERSION_CURRENCIES = ("USD", "VES")

_DIRECTIONS = {
    ("USD", "VES"): ConversionDirection.USD_TO_VES,
    ("VES", "USD"): ConversionDirection.VES_TO_USD,
}


def parse_rate(value: Union[str, float, int, None]) -> Optional[float]:
    """Return value as a usable rate, or None if it is empty, non-numeric or <= 0"""
    if value is None or isinstance(value, bool):
        return None
    try:
        rate = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(rate) or rate <= 0:
        return None
    return rate


@dataclass
class ExchangeRateContext:
    """
    Rate state owned by one form/session.

    market_rate starts at the default constant and is replaced by every
    successful fetch. historical_rates memoizes per-transaction lookups;
    a None value means "looked up, nothing stored".
    """

    market_rate: float = DEFAULT_EXCHANGE_RATE
    bcv_rate: Optional[float] = None
    last_updated: str = DEFAULT_RATE_LABEL
    has_market_rate: bool = False
    is_custom_rate: bool = False
    custom_rate_value: Optional[str] = None
    historical_rates: Dict[str, Optional[float]] = field(default_factory=dict)

    @property
    def is_stale(self) -> bool:
        return not self.has_market_rate

    def apply_market_rates(self, rates: MarketRates) -> None:
        """Adopt freshly fetched rates; the custom value is only prefilled outside custom mode"""
        self.market_rate = rates.usd_to_ves_parallel
        self.bcv_rate = rates.usd_to_ves_bcv
        self.last_updated = rates.last_updated
        self.has_market_rate = True
        if not self.is_custom_rate:
            self.custom_rate_value = str(rates.usd_to_ves_parallel)

    def set_custom_rate(self, value: Optional[str]) -> None:
        self.custom_rate_value = value

    def set_custom_rate_mode(self, enabled: bool) -> None:
        self.is_custom_rate = enabled

    def remember_historical_rate(self, transaction_id: str, rate: Optional[float]) -> None:
        self.historical_rates[transaction_id] = parse_rate(rate)


def resolve_rate(
    context: ExchangeRateContext,
    transaction_id: Optional[str] = None,
    use_custom_rate: Optional[bool] = None,
    default_rate: float = DEFAULT_EXCHANGE_RATE,
) -> ResolvedRate:
    """
    Pick the rate for one conversion.

    Precedence:
    1. Historical rate stored for transaction_id
    2. Custom rate, when custom mode is on (or forced by use_custom_rate) and the value parses
    3. Last fetched market rate
    4. default_rate, when no fetch ever succeeded or the market rate is unusable
    """
    if transaction_id is not None:
        historical = parse_rate(context.historical_rates.get(transaction_id))
        if historical is not None:
            return ResolvedRate(rate=historical, source=RateSource.HISTORICAL)

    custom_enabled = context.is_custom_rate if use_custom_rate is None else use_custom_rate
    if custom_enabled:
        custom = parse_rate(context.custom_rate_value)
        if custom is not None:
            return ResolvedRate(rate=custom, source=RateSource.CUSTOM)

    market = parse_rate(context.market_rate)
    if context.has_market_rate and market is not None:
        return ResolvedRate(rate=market, source=RateSource.MARKET)

    return ResolvedRate(rate=default_rate, source=RateSource.DEFAULT)


def convert_amount(amount: float, rate: float, direction: Union[ConversionDirection, str]) -> float:
    """
    USD→VES multiplies by the rate, VES→USD divides by it.

    Raises:
        InvalidRateError: rate is not a positive finite number
    """
    if parse_rate(rate) is None:
        raise InvalidRateError(f"Exchange rate must be positive, got {rate}")

    direction = ConversionDirection(direction)
    if direction is ConversionDirection.USD_TO_VES:
        return amount * rate
    return amount / rate


def convert(
    context: ExchangeRateContext,
    amount: float,
    direction: Union[ConversionDirection, str],
    transaction_id: Optional[str] = None,
    use_custom_rate: Optional[bool] = None,
    default_rate: float = DEFAULT_EXCHANGE_RATE,
) -> float:
    resolved = resolve_rate(context, transaction_id, use_custom_rate, default_rate)
    return convert_amount(amount, resolved.rate, direction)


def conversion_direction(
    from_currency: str,
    to_currency: str,
    allowed_currencies: Sequence[str] = CONVERSION_CURRENCIES,
) -> ConversionDirection:
    """Map a currency pair to a direction, rejecting currencies outside the allow-list"""
    source, target = from_currency.upper(), to_currency.upper()
    for code in (source, target):
        if code not in allowed_currencies:
            raise InvalidArgumentError(f"Currency {code} is not convertible")
    try:
        return _DIRECTIONS[(source, target)]
    except KeyError:
        raise InvalidArgumentError(f"No conversion from {source} to {target}") from None


def convert_currency(
    context: ExchangeRateContext,
    amount: float,
    from_currency: str,
    to_currency: str,
    transaction_id: Optional[str] = None,
    use_custom_rate: Optional[bool] = None,
    allowed_currencies: Sequence[str] = CONVERSION_CURRENCIES,
    default_rate: float = DEFAULT_EXCHANGE_RATE,
) -> float:
    """Convert between two allowed currencies; same-currency amounts pass through"""
    if from_currency.upper() == to_currency.upper():
        return amount
    direction = conversion_direction(from_currency, to_currency, allowed_currencies)
    return convert(context, amount, direction, transaction_id, use_custom_rate, default_rate)


def convert_ves_to_usd_with_historical_rate(
    context: ExchangeRateContext,
    ves_amount: float,
    transaction_id: str,
    fallback_rate: Optional[float] = None,
) -> float:
    """
    Historical rate if memoized, else fallback_rate, else the amount unchanged
    (the amount is then assumed to already be in USD).
    """
    historical = parse_rate(context.historical_rates.get(transaction_id))
    if historical is not None:
        return ves_amount / historical

    fallback = parse_rate(fallback_rate)
    if fallback is not None:
        return ves_amount / fallback

    return ves_amount
