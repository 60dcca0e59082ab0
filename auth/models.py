"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and routes do
the work; the dataclass only owns the shape of an account row.

Layer rule: no imports from api/ or identity/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class Account:
    """A first-party account in the Credential Store.

    email is always the normalized form (stripped, lowercased). password_hash
    is the bcrypt output and must never leave the server -- response models
    copy the public fields explicitly instead of serializing this dataclass.
    """

    display_name: str
    email: str
    password_hash: str
    id: int | None = None
    created_at: str | None = None
