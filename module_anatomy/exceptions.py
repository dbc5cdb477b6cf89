from __future__ import annotations

from typing import Any, Dict, Optional, Sequence


class AnatomyError(Exception):
    """Base error for anatomy store, query and seed operations."""

    def __init__(
        self,
        message: str,
        *,
        flag: Optional[str] = None,
        name: Optional[str] = None,
        path: Optional[Sequence[str]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.flag = flag
        self.name = name
        self.path = tuple(path or ())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "flag": self.flag,
            "name": self.name,
            "path": list(self.path),
        }

    def __str__(self) -> str:
        where = " > ".join(self.path) if self.path else self.name
        if where:
            return f"{self.message} [flag={self.flag} at {where}]"
        return self.message


class AnatomyValidationError(AnatomyError):
    """DTO failed validation; raised before anything is written."""

    def __init__(self, message: str, *, messages: Optional[Dict[str, Any]] = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.messages = messages or {}

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["messages"] = self.messages
        return data


class AnatomyPersistenceError(AnatomyError):
    """Storage rejected the write; the whole subtree was rolled back."""


class AnatomyQueryError(AnatomyError):
    """Conditionals could not be applied to the flag-scoped query."""


class SeedError(AnatomyError):
    """Seed source is malformed; the seed run is aborted."""
