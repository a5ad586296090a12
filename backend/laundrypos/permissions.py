"""
Permission Constants and Role Mappings

WHY: Roles are fixed (admin, manager, cashier, processor) and supplied by
the identity collaborator; what each role may do is decided here.

DESIGN PRINCIPLES:
- One permission per action
- Admin has every permission
- Processors handle garments only and never touch money
"""

# =============================================================================
# PERMISSION CATEGORIES
# =============================================================================

class PermissionCategory:
    """Permission categories for organization."""
    ORDERS = "ORDERS"
    CASH = "CASH"
    REPORTS = "REPORTS"


# =============================================================================
# PERMISSION DEFINITIONS
# =============================================================================

# Each permission is defined as: (code, name, description, category)
PERMISSION_DEFINITIONS = [
    (
        "CREATE_ORDERS",
        "Create Orders",
        "Take in new receipts and register customers",
        PermissionCategory.ORDERS
    ),
    (
        "MANAGE_ORDERS",
        "Manage Orders",
        "Change order status and collect receipts",
        PermissionCategory.ORDERS
    ),
    (
        "MANAGE_CASH",
        "Manage Cash",
        "Receive payments, save and reconcile daily cash summaries",
        PermissionCategory.CASH
    ),
    (
        "MANAGE_EXPENSES",
        "Manage Expenses",
        "Record expenses and bank deposits",
        PermissionCategory.CASH
    ),
    (
        "VIEW_REPORTS",
        "View Reports",
        "View ledger, audit log and integrity reports",
        PermissionCategory.REPORTS
    ),
]


# =============================================================================
# DEFAULT ROLE PERMISSIONS
# =============================================================================

DEFAULT_ROLE_PERMISSIONS = {
    "admin": [
        # Admin gets ALL permissions
        "CREATE_ORDERS",
        "MANAGE_ORDERS",
        "MANAGE_CASH",
        "MANAGE_EXPENSES",
        "VIEW_REPORTS",
    ],

    "manager": [
        "CREATE_ORDERS",
        "MANAGE_ORDERS",
        "MANAGE_CASH",
        "MANAGE_EXPENSES",
        "VIEW_REPORTS",
    ],

    "cashier": [
        "CREATE_ORDERS",
        "MANAGE_CASH",
    ],

    "processor": [
        "MANAGE_ORDERS",
    ],
}


def get_all_permission_codes():
    """Get list of all permission codes."""
    return [code for code, _, _, _ in PERMISSION_DEFINITIONS]


def get_role_permissions(role: str) -> set:
    if role == "admin":
        return set(get_all_permission_codes())
    return set(DEFAULT_ROLE_PERMISSIONS.get(role, []))


def role_has_permission(role: str, permission_code: str) -> bool:
    return permission_code in get_role_permissions(role)


def validate_permission_code(code):
    """Raise ValueError for an unknown permission code."""
    if code not in get_all_permission_codes():
        raise ValueError(f"Invalid permission code: {code}")
    return True
