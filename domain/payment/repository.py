"""
Collaborator interfaces the payment core consumes from the host system.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from .entity import Order


class OrderStore(ABC):
    """Narrow write path into the order subsystem."""

    @abstractmethod
    async def get_metadata(self, order: Order, key: str) -> Optional[str]:
        """Read a provider metadata value stored on the order"""
        pass

    @abstractmethod
    async def set_metadata(self, order: Order, key: str, value: Optional[str]) -> None:
        """Store a provider metadata value on the order (None removes the key)"""
        pass


class CurrencyLookup(ABC):
    """ISO 4217 currency facts."""

    @abstractmethod
    def is_valid_iso4217(self, code: str) -> bool:
        pass

    @abstractmethod
    def minor_unit_exponent(self, code: str) -> int:
        """Number of decimal places of the currency's minor unit"""
        pass
