from __future__ import annotations

from enum import StrEnum


class Actions(StrEnum):
    PROJECT_READ = "project.read"
    PROJECT_CREATE = "project.create"
    PROJECT_UPDATE = "project.update"
    PROJECT_DELETE = "project.delete"

    QUOTE_CREATE = "quote.create"
    QUOTE_UPDATE = "quote.update"

    ORDER_CREATE = "order.create"
    ORDER_UPDATE = "order.update"
    ORDER_DELETE = "order.delete"

    USER_LIST = "user.list"
    USER_CREATE = "user.create"
    USER_DELETE = "user.delete"

    FEATURE_FLAG_LIST = "feature_flag.list"
    FEATURE_FLAG_UPSERT = "feature_flag.upsert"

    INVENTORY_TRANSACTION_CREATE = "inventory.transaction.create"

    WORK_ORDER_CREATE = "work_order.create"
    WORK_ORDER_UPDATE = "work_order.update"

    CHANGE_ORDER_CREATE = "change_order.create"
    CHANGE_ORDER_UPDATE = "change_order.update"
    CHANGE_ORDER_DELETE = "change_order.delete"
    CHANGE_ORDER_APPROVE = "change_order.approve"

    INVOICE_CREATE = "invoice.create"
    INVOICE_UPDATE = "invoice.update"
    INVOICE_SEND = "invoice.send"
    INVOICE_MARK_PAID = "invoice.mark_paid"

    PURCHASE_ORDER_CREATE = "purchase_order.create"
    PURCHASE_ORDER_RECEIVE = "purchase_order.receive"

    MATERIAL_CREATE = "material.create"
    MATERIAL_UPDATE = "material.update"
    MATERIAL_DELETE = "material.delete"
    MATERIAL_STOCK_UPDATE = "material.stock.update"

    SALES_ASSIGN = "sales.assign"
    SALES_WORKLOAD_READ = "sales.workload.read"

    SECURITY_POLICY_READ = "security.policy.read"


class Roles(StrEnum):
    OWNER = "owner"
    ADMIN = "admin"
    OFFICE_MANAGER = "office_manager"
    SHOP_MANAGER = "shop_manager"
    PROJECT_MANAGER = "project_manager"
    TEAM_LEADER = "team_leader"
    TECHNICIAN = "technician"
    SALES = "sales"
    FABRICATION = "fabrication"
    USER = "user"
    CUSTOMER = "customer"


SYSTEM_ADMIN_PERMISSION = "system_admin"
