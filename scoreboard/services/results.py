from dataclasses import dataclass, field
from typing import Any, Dict, Optional

# Failure codes shared by admin and reconciliation operations
NOT_FOUND = "not_found"
UPSTREAM_ERROR = "upstream_error"
GIFTED = "gifted"
NOT_LINKED = "not_linked"
INVALID = "invalid"
CONFLICT = "conflict"

HTTP_STATUS_BY_CODE = {
    NOT_FOUND: 404,
    UPSTREAM_ERROR: 502,
    GIFTED: 400,
    NOT_LINKED: 400,
    INVALID: 400,
    CONFLICT: 409,
}


@dataclass
class OperationResult:
    """Outcome of a service operation: either ``data`` or an error code and message."""

    ok: bool
    data: Any = None
    code: Optional[str] = None
    message: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def success(cls, data=None, **details):
        return cls(ok=True, data=data, details=details)

    @classmethod
    def failure(cls, code, message, **details):
        return cls(ok=False, code=code, message=message, details=details)

    @property
    def http_status(self):
        if self.ok:
            return 200
        return HTTP_STATUS_BY_CODE.get(self.code, 400)

    def to_error_dict(self):
        return {'error': self.code, 'message': self.message, **self.details}
