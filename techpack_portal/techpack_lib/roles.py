"""Viewer roles and the comment language each of them reads first."""
from __future__ import annotations

import unicodedata
from dataclasses import dataclass
from typing import Any

INTERNAL_ROLES = frozenset({"BATE", "ADMINISTRATOR", "HANDLER", "HAENDLER"})
SUPPLIER_ROLES = frozenset({"SUPPLIER", "LIEFERANT"})


def normalize_role(role: Any) -> str:
    """Upper-case ``role`` and strip diacritics, so ``Händler`` becomes ``HANDLER``."""
    text = str(role or "").strip()
    decomposed = unicodedata.normalize("NFKD", text)
    stripped = "".join(char for char in decomposed if not unicodedata.combining(char))
    return stripped.upper()


def is_internal_role(role: Any) -> bool:
    return normalize_role(role) in INTERNAL_ROLES


def is_supplier_role(role: Any) -> bool:
    return normalize_role(role) in SUPPLIER_ROLES


@dataclass(frozen=True)
class PortalUser:
    email: str
    role: str
    name: str = ""

    @property
    def is_internal(self) -> bool:
        return is_internal_role(self.role)

    @property
    def is_supplier(self) -> bool:
        return is_supplier_role(self.role)

    @property
    def display_name(self) -> str:
        return self.name or self.email

    def reads_primary(self) -> bool:
        """Internal staff read the primary language; everyone else the secondary one."""
        return self.is_internal
