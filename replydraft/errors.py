from typing import Any, Dict, Optional


class DraftError(Exception):
    """Base error surfaced to the caller with an HTTP-style status."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_payload(self) -> Dict[str, Any]:
        return {"ok": False, "error": self.message}


class InputValidationError(DraftError):
    status_code = 400


class EntitlementError(DraftError):
    status_code = 402

    def __init__(self, message: str = "Your plan isn't active yet. Subscribe to draft replies."):
        super().__init__(message)

    def to_payload(self) -> Dict[str, Any]:
        return {**super().to_payload(), "upgrade_required": True}


class UpstreamError(DraftError):
    status_code = 502

    def __init__(self, message: str, upstream_status: Optional[int] = None, upstream_body: Any = None):
        super().__init__(message)
        self.upstream_status = upstream_status
        self.upstream_body = upstream_body

    def to_payload(self) -> Dict[str, Any]:
        payload = super().to_payload()
        if self.upstream_status is not None:
            payload["upstream_status"] = self.upstream_status
        return payload


class EmptyDraftError(UpstreamError):
    def __init__(self, message: str = "No reply content left after enforcement"):
        super().__init__(message)
