# storefront/domain/errors.py
"""
Wyjątki domenowe. Routery tłumaczą je na kody HTTP,
serwisy nie wiedzą nic o HTTP.
"""
from typing import Any, Dict, List


class StorefrontError(Exception):
    """Baza dla wszystkich błędów domenowych."""

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class ValidationError(StorefrontError):
    """Zła ilość albo inne błędne wejście."""


class NotFoundError(StorefrontError):
    """Nieznany koszyk, płatność albo produkt."""


class ConflictError(StorefrontError):
    """Operacja sprzeczna ze stanem, np. zwrot ponad pozostałą kwotę."""


class GatewayUnavailableError(StorefrontError):
    """Bramka płatności nie odpowiedziała poprawnie, klient może ponowić."""


class InternalError(StorefrontError):
    """Nieoczekiwany błąd po naszej stronie."""


class StockUnavailableError(StorefrontError):
    """
    Zbiorczy błąd stanów magazynowych: jedna pozycja na każdy produkt,
    którego brakuje, żeby klient zobaczył wszystkie problemy naraz.
    """

    def __init__(self, details: List[Dict[str, Any]]):
        super().__init__("Insufficient stock for one or more products")
        self.details = details
