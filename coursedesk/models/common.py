# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Shared enumerations.

Payment values arrive from older clients in their legacy spellings
(``NO_PAGADO``, ``EFECTIVO``, ...). They are folded into the canonical
members here, at the API boundary, so nothing past it ever sees an alias.
"""

from enum import Enum
from typing import Any


class _NormalizedEnum(str, Enum):
    """String enum that also accepts case-insensitive legacy aliases."""

    @classmethod
    def _aliases(cls) -> dict[str, str]:
        return {}

    @classmethod
    def normalize(cls, value: Any) -> Any:
        """Map a raw value or legacy alias to a canonical member.

        Args:
            value: Incoming value (member, string, or None).

        Returns:
            The canonical member, or None when value is None.

        Raises:
            ValueError: If the value is neither a member nor a known alias.
        """
        if value is None or isinstance(value, cls):
            return value
        if not isinstance(value, str):
            raise ValueError(f"Invalid {cls.__name__}: {value!r}")

        key = value.strip().upper()
        key = cls._aliases().get(key, key)
        try:
            return cls(key)
        except ValueError:
            allowed = ", ".join(member.value for member in cls)
            raise ValueError(f"Invalid {cls.__name__} '{value}'. Allowed: {allowed}") from None


class PaymentState(_NormalizedEnum):
    """Payment status of an enrollment."""

    PENDING = "PENDING"
    PAID = "PAID"
    UNPAID = "UNPAID"

    @classmethod
    def _aliases(cls) -> dict[str, str]:
        return {
            "PENDIENTE": "PENDING",
            "PAGADO": "PAID",
            "NO_PAGADO": "UNPAID",
        }


class PaymentMethod(_NormalizedEnum):
    """How a payment was made."""

    CASH = "CASH"
    TRANSFER = "TRANSFER"
    YAPE = "YAPE"
    PLIN = "PLIN"
    CARD = "CARD"
    OTHER = "OTHER"

    @classmethod
    def _aliases(cls) -> dict[str, str]:
        return {
            "EFECTIVO": "CASH",
            "TRANSFERENCIA": "TRANSFER",
            "TARJETA": "CARD",
            "OTRO": "OTHER",
        }


class DocumentType(str, Enum):
    """Identity document kinds for participants."""

    DNI = "DNI"
    FOREIGN_ID = "FOREIGN_ID"
    PASSPORT = "PASSPORT"
    RUC = "RUC"


class UserRole(str, Enum):
    """Back-office roles carried in access tokens."""

    ADMIN = "ADMIN"
    SUPER_ADMIN = "SUPER_ADMIN"


STAFF_ROLES = frozenset({UserRole.ADMIN.value, UserRole.SUPER_ADMIN.value})
