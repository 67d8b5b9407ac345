"""Response envelope returned by control plane handlers."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

CODE_OK = 200
CODE_SERVER_ERROR = 500
CODE_DECODE_ERROR = 513


@dataclass
class Response:
    code: int = 0
    success: bool = False
    error: str = ""
    result: Any = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Response:
        """Parse a response body; field names are matched case-insensitively."""
        fields = {str(key).lower(): value for key, value in data.items()}
        code = fields.get("code", 0)
        return cls(
            code=int(code) if isinstance(code, (int, float, str)) and str(code).lstrip("-").isdigit() else 0,
            success=bool(fields.get("success", False)),
            error=str(fields.get("error") or ""),
            result=fields.get("result"),
        )
