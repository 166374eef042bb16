from pydantic import BaseModel, ConfigDict


class PaginationMeta(BaseModel):
    total: int
    limit: int
    offset: int
    count: int
    has_next: bool

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "total": 42,
                "limit": 50,
                "offset": 0,
                "count": 42,
                "has_next": False,
            }
        }
    )


class ValidationIssueOut(BaseModel):
    """One problem with the request; ``insufficient_stock`` errors report available and required here."""

    field: str
    message: str
    type: str | None = None


class ErrorDetailOut(BaseModel):
    code: str
    message: str
    request_id: str
    path: str
    details: list[ValidationIssueOut] | None = None


class ErrorOut(BaseModel):
    error: ErrorDetailOut

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "error": {
                    "code": "insufficient_stock",
                    "message": "Insufficient stock for item Basmati Rice 5kg. Available: 3, Required: 7",
                    "request_id": "8d8f2b00-6c79-4a45-8ff4-b0a5f2bc4bc2",
                    "path": "/inventory/deduct",
                    "details": [
                        {"field": "available", "message": "3", "type": "insufficient_stock"},
                        {"field": "required", "message": "7", "type": "insufficient_stock"},
                    ],
                }
            }
        }
    )
