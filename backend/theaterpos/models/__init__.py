from .tenancy import Theater, Product
from .auth import User, AuthToken, Role
from .page_access import PageAccess
from .otp import Otp
from .settings import Setting
from .stock import MonthlyStock
from .security import SecurityEvent

__all__ = [
    'Theater', 'Product',
    'User', 'AuthToken', 'Role',
    'PageAccess',
    'Otp',
    'Setting',
    'MonthlyStock',
    'SecurityEvent',
]
