"""Cache statistics model."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel

from pixelserve.types import CacheMode


class CacheStats(BaseModel):
    """Backend-specific cache stats, shaped for a health endpoint.

    Memory mode reports ``items``, disk mode reports ``directory``, and
    ``none`` reports only the mode.
    """

    mode: CacheMode
    items: int | None = None
    directory: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)
