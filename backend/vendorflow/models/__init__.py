from vendorflow.models.user import User, UserRole
from vendorflow.models.vendor import Vendor
from vendorflow.models.wedding import Wedding

__all__ = [
    "User",
    "UserRole",
    "Vendor",
    "Wedding",
]
