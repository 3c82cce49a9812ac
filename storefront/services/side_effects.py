# storefront/services/side_effects.py
from typing import Any, Callable

from storefront.utils.logging import get_logger

logger = get_logger(__name__)


def fire_and_forget(description: str, func: Callable[..., Any], *args: Any) -> bool:
    """
    Odpala efekt uboczny po commicie (bilety, powiadomienia).
    Jego błąd jest logowany i nie cofa przejścia stanu, które go wywołało.
    """
    try:
        func(*args)
        return True
    except Exception:
        logger.exception(f"Side effect '{description}' failed, state change is kept")
        return False
