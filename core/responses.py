"""
Result types exchanged across the auth core.

``ApiResponse`` is the envelope every public auth operation returns;
``StoreResult`` is what credential-store primitives report back to the
orchestrator instead of raising.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Optional

from .errors import ErrorKind


@dataclass(frozen=True)
class StoreResult:
    succeeded: bool
    errors: tuple = ()

    @classmethod
    def success(cls) -> 'StoreResult':
        return cls(True)

    @classmethod
    def failed(cls, *errors: str) -> 'StoreResult':
        return cls(False, tuple(errors))


@dataclass
class ApiResponse:
    ok: bool
    message: str
    data: Any = None
    errors: List[str] = field(default_factory=list)
    code: Optional[ErrorKind] = None

    @classmethod
    def success(cls, data: Any = None, message: str = 'Operation successful.') -> 'ApiResponse':
        return cls(ok=True, message=message, data=data)

    @classmethod
    def failure(cls, kind: ErrorKind, message: str, errors=None) -> 'ApiResponse':
        return cls(ok=False, message=message, errors=list(errors or []), code=kind)

    def to_dict(self) -> dict:
        data = self.data
        if hasattr(data, 'to_dict'):
            data = data.to_dict()
        return {
            'ok': self.ok,
            'message': self.message,
            'data': data,
            'errors': list(self.errors),
            'code': self.code.value if self.code else None,
        }
