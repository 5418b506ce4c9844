from __future__ import annotations

import enum


class PartyRole(str, enum.Enum):
    """Caller roles. The tenant a caller acts for is derived from the role."""
    SHOP_STAFF = "SHOP_STAFF"
    SHOP_ADMIN = "SHOP_ADMIN"
    RETAILER = "RETAILER"


class OwnerType(str, enum.Enum):
    """Kind of party that owns an inventory bucket."""
    SHOP = "SHOP"
    RETAILER = "RETAILER"


class ReceiptStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class ReceiptDecision(str, enum.Enum):
    APPROVE = "APPROVED"
    REJECT = "REJECTED"


class DeliveryStatus(str, enum.Enum):
    PENDING = "PENDING"
    SHIPPED = "SHIPPED"
    IN_TRANSIT = "IN_TRANSIT"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class DistributionPaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    PAID = "PAID"


class InvoiceStatus(str, enum.Enum):
    UNPAID = "UNPAID"
    PARTIALLY_PAID = "PARTIALLY_PAID"
    PAID = "PAID"


class PaymentMethod(str, enum.Enum):
    CASH = "CASH"
    CARD = "CARD"
    UPI = "UPI"
    GIFT_CARD = "GIFT_CARD"


class StockField(str, enum.Enum):
    """Counters a stock mutation can touch, aggregate and lot level."""
    TOTAL = "total_stock"
    AVAILABLE = "available_stock"
    ALLOCATED = "allocated_stock"
    CURRENT = "current_stock"
    RESERVED = "reserved_stock"
    IN_TRANSIT = "in_transit_stock"


class MovementType(str, enum.Enum):
    STOCK_IN = "STOCK_IN"      # approved stock receipt
    ADD = "ADD"                # manual adjustment up
    REMOVE = "REMOVE"          # manual adjustment down
    ALLOCATE = "ALLOCATE"      # retailer available -> allocated for a shop
    IN_TRANSIT = "IN_TRANSIT"  # distribution left the warehouse
    DELIVER = "DELIVER"        # distribution delivered, reservation committed
    RELEASE = "RELEASE"        # cancelled distribution returns to available


class RetailerTransactionType(str, enum.Enum):
    SALE_TO_SHOP = "SALE_TO_SHOP"
    PURCHASE = "PURCHASE"
    ADJUSTMENT = "ADJUSTMENT"
