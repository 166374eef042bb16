class DomainError(Exception):
    """Base class for business-rule failures raised by the service layer.

    Routers let these propagate; ``observability.domain_exception_handler``
    renders them in the standard error envelope using ``status_code`` and
    ``code``.
    """

    status_code: int = 400
    code: str = "bad_request"

    def __init__(self, message: str, *, details: list[dict] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class StockValidationError(DomainError):
    status_code = 400
    code = "bad_request"


class OrganizationNotFoundError(DomainError):
    status_code = 404
    code = "not_found"

    def __init__(self, org_id: str) -> None:
        super().__init__("Organization not found")
        self.org_id = org_id


class ItemNotFoundError(DomainError):
    status_code = 404
    code = "not_found"

    def __init__(self, item_id: str) -> None:
        super().__init__(f"Item {item_id} not found")
        self.item_id = item_id


class WarehouseNotFoundError(DomainError):
    status_code = 404
    code = "not_found"

    def __init__(self, warehouse_id: str) -> None:
        super().__init__(f"Warehouse {warehouse_id} not found")
        self.warehouse_id = warehouse_id


class DocumentNotFoundError(DomainError):
    status_code = 404
    code = "not_found"


class InsufficientStockError(DomainError):
    status_code = 400
    code = "insufficient_stock"

    def __init__(
        self,
        *,
        item_name: str,
        available: int,
        required: int,
        warehouse_id: str | None = None,
    ) -> None:
        scope = f" in warehouse {warehouse_id}" if warehouse_id else ""
        super().__init__(
            f"Insufficient stock for item {item_name}{scope}. "
            f"Available: {available}, Required: {required}",
            details=[
                {"field": "available", "message": str(available), "type": "insufficient_stock"},
                {"field": "required", "message": str(required), "type": "insufficient_stock"},
            ],
        )
        self.item_name = item_name
        self.available = available
        self.required = required
        self.warehouse_id = warehouse_id


class InconsistentLedgerError(DomainError):
    """Cached item stock and the batch ledger disagree."""

    status_code = 500
    code = "inconsistent_ledger"

    def __init__(self, *, item_id: str, cached_quantity: int, batch_quantity: int, shortfall: int) -> None:
        super().__init__(
            f"Could not fully deduct stock for item {item_id}. Remaining: {shortfall} "
            f"(cached stock {cached_quantity}, batch total {batch_quantity})"
        )
        self.item_id = item_id
        self.cached_quantity = cached_quantity
        self.batch_quantity = batch_quantity
        self.shortfall = shortfall


class DocumentNumberConflictError(DomainError):
    status_code = 409
    code = "conflict"
