"""
Permission Constants and Role Mappings

WHY: Centralized permission definitions keep route guards and the CLI
consistent. Roles are fixed (admin, worker); "approval authority" is the
APPROVE_SALE_CHANGE permission, which only admins hold.
"""

# =============================================================================
# PERMISSION CATEGORIES
# =============================================================================

class PermissionCategory:
    """Permission categories for organization."""
    INVENTORY = "INVENTORY"
    SALES = "SALES"


# =============================================================================
# PERMISSION DEFINITIONS
# =============================================================================

# Each permission is defined as: (code, name, description, category)
PERMISSION_DEFINITIONS = [
    # INVENTORY PERMISSIONS
    (
        "VIEW_INVENTORY",
        "View Inventory",
        "View products, stock levels and stock movements",
        PermissionCategory.INVENTORY
    ),
    (
        "MANAGE_INVENTORY",
        "Manage Inventory",
        "Create products and record restocks",
        PermissionCategory.INVENTORY
    ),

    # SALES PERMISSIONS
    (
        "VIEW_SALES",
        "View Sales",
        "View sales and their change history",
        PermissionCategory.SALES
    ),
    (
        "CREATE_SALE",
        "Create Sale",
        "Record a sale (takes stock immediately)",
        PermissionCategory.SALES
    ),
    (
        "REQUEST_SALE_CHANGE",
        "Request Sale Change",
        "Propose an edit or deletion of a recorded sale",
        PermissionCategory.SALES
    ),
    (
        "APPROVE_SALE_CHANGE",
        "Approve Sale Change",
        "Approve or reject proposed sale edits and deletions",
        PermissionCategory.SALES
    ),
]


# =============================================================================
# DEFAULT ROLE MAPPINGS
# =============================================================================

# WHY these mappings:
# - ADMIN: reviews change requests and manages the product catalogue
# - WORKER: sells and may ask for corrections, never decides them

ROLE_ADMIN = "admin"
ROLE_WORKER = "worker"
ROLES = (ROLE_ADMIN, ROLE_WORKER)

DEFAULT_ROLE_PERMISSIONS = {
    "admin": [
        "VIEW_INVENTORY",
        "MANAGE_INVENTORY",
        "VIEW_SALES",
        "CREATE_SALE",
        "REQUEST_SALE_CHANGE",
        "APPROVE_SALE_CHANGE",
    ],
    "worker": [
        "VIEW_INVENTORY",
        "VIEW_SALES",
        "CREATE_SALE",
        "REQUEST_SALE_CHANGE",
    ],
}


# =============================================================================
# PERMISSION HELPERS
# =============================================================================

def get_all_permission_codes():
    """Get list of all permission codes."""
    return [perm[0] for perm in PERMISSION_DEFINITIONS]


def validate_permission_code(code):
    """Check if a permission code is valid."""
    return code in get_all_permission_codes()


def get_role_permissions(role):
    return set(DEFAULT_ROLE_PERMISSIONS.get(role, []))


def has_permission(user, permission_code):
    """True when the user is active and the user's role grants permission_code."""
    if user is None or not user.is_active:
        return False
    return permission_code in get_role_permissions(user.role)
