from __future__ import annotations

import uuid


def new_id() -> str:
    """Short random primary key for products, partners, orders and sales."""
    return uuid.uuid4().hex[:12]
