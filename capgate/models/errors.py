from __future__ import annotations

"""HTTP-facing errors raised by the authorization pipeline.

They subclass ``HTTPException`` so FastAPI renders them directly when they
escape a dependency or route handler.
"""

from fastapi import HTTPException, status

__all__ = ["AuthorizationDenied", "InputError", "NotAuthenticated"]


class NotAuthenticated(HTTPException):
    """No usable credential, or no login behind it."""

    def __init__(self, detail: str = "not_authenticated") -> None:
        super().__init__(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


class AuthorizationDenied(HTTPException):
    """Every requirement, special-change and ownership path was exhausted."""

    def __init__(self, detail: str = "insufficient_capabilities") -> None:
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


class InputError(HTTPException):
    def __init__(self, detail: str = "invalid_input") -> None:
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)
