from __future__ import annotations

from typing import Callable

from fastapi import Header, HTTPException


def api_key_guard(api_key: str | None) -> Callable[..., None]:
    """Build a dependency that requires X-API-Key when `api_key` is set."""

    def require_api_key(x_api_key: str | None = Header(default=None)) -> None:
        if not api_key:
            return
        if (x_api_key or "") != api_key:
            raise HTTPException(status_code=401, detail="invalid API key")

    return require_api_key
