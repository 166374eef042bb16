from app.schemas.common import ErrorOut


_ERROR_EXAMPLES: dict[int, tuple[str, str]] = {
    400: ("insufficient_stock", "Insufficient stock for item Basmati Rice 5kg. Available: 3, Required: 7"),
    404: ("not_found", "Item not found"),
    409: ("conflict", "Failed to generate unique invoice number after 3 attempts"),
    422: ("validation_error", "Validation failed"),
    500: ("internal_error", "Internal server error"),
}


def error_responses(*status_codes: int, path: str = "/inventory/deduct") -> dict[int, dict]:
    """OpenAPI ``responses`` entries that document the shared error envelope."""
    responses: dict[int, dict] = {}
    for status_code in status_codes:
        code, message = _ERROR_EXAMPLES.get(status_code, ("http_error", "HTTP error"))
        responses[status_code] = {
            "model": ErrorOut,
            "description": message if status_code >= 500 else code.replace("_", " ").capitalize(),
            "content": {
                "application/json": {
                    "example": {
                        "error": {
                            "code": code,
                            "message": message,
                            "request_id": "request-id",
                            "path": path,
                            "details": None,
                        }
                    }
                }
            },
        }
    return responses
