"""Generic response shapes consumed by the client (errors, paginated lists)."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ErrorPayload(BaseModel):
    """Error body of a failed request: {message?, error?, errors?}.

    Backends are not consistent here, so unknown keys are dropped and a
    non-mapping `errors` value (e.g. a list of strings) is ignored.
    """

    message: Optional[str] = None
    error: Optional[str] = None
    errors: Optional[Dict[str, str]] = None

    model_config = ConfigDict(extra="ignore")

    @field_validator("message", "error", mode="before")
    @classmethod
    def coerce_text(cls, v):
        """Keep text fields as strings."""
        if v is None or isinstance(v, str):
            return v
        return str(v)

    @field_validator("errors", mode="before")
    @classmethod
    def coerce_errors(cls, v):
        """Accept {field: msg} or {field: [msg, ...]}; anything else becomes None."""
        if not isinstance(v, dict):
            return None
        coerced = {}
        for field, msg in v.items():
            if isinstance(msg, (list, tuple)):
                msg = msg[0] if msg else ""
            coerced[str(field)] = str(msg)
        return coerced

    @classmethod
    def from_body(cls, body: Any) -> "ErrorPayload":
        """Build a payload from whatever the server sent back."""
        if isinstance(body, dict):
            return cls.model_validate(body)
        if isinstance(body, str) and body.strip():
            return cls(message=body.strip()[:500])
        return cls()


class PaginatedList(BaseModel):
    """List endpoints (all-kelas, players, daily tasks...) answer with this."""

    data: List[Dict[str, Any]] = Field(default_factory=list)
    page: Optional[int] = None
    total_pages: Optional[int] = Field(None, alias="totalPages")
    total: Optional[int] = None

    model_config = ConfigDict(extra="allow", populate_by_name=True)
