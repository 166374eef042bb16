from app.models.organization import Organization
from app.models.warehouse import Warehouse
from app.models.item import Item
from app.models.inventory import InventoryBatch, StockAlert, StockTransaction
from app.models.invoice import Invoice
from app.models.quotation import Quotation
