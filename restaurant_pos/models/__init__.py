from restaurant_pos.models.cart import CartLine
from restaurant_pos.models.catalog import Category, MenuItem, Modifier
from restaurant_pos.models.inventory import (
    Alert,
    InventoryItem,
    PurchaseOrder,
    PurchaseOrderLine,
    RecipeLine,
    Shortfall,
    StockMovement,
    Supplier,
    WasteEntry,
)
from restaurant_pos.models.kitchen import KitchenTicket, Station, TicketItem
from restaurant_pos.models.order import Discount, LineModifier, Order, OrderLine, TimelineEntry, Totals
from restaurant_pos.models.payment import GatewayResult, PaymentLeg, Refund, Transaction
from restaurant_pos.models.table import Table
