# jsonstore/result.py
"""Uniform outcome wrapper returned by every store operation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass
class Result:
    """
    Outcome of one operation.

    ``error`` is set only when ``success`` is False. The shape of ``data``
    depends on the operation (saved object, list of documents, row count).
    """

    success: bool = False
    data: Any = None
    error: Exception | None = None

    @classmethod
    def ok(cls, data: Any = None) -> Result:
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: Exception) -> Result:
        return cls(success=False, error=error)

    def set_error(self, error: Exception) -> None:
        """Mark this result as failed."""
        self.success = False
        self.error = error

    def unwrap(self) -> Any:
        """Return ``data``, or raise the captured error."""
        if not self.success:
            if self.error is not None:
                raise self.error
            raise RuntimeError("Operation did not complete")
        return self.data
