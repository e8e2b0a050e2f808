"""Random correlation tokens."""

from __future__ import annotations

import uuid


class UuidTokenGenerator:
    """Implements ``TokenGeneratorPort`` with random UUID4 strings."""

    def new_token(self) -> str:
        return str(uuid.uuid4())
