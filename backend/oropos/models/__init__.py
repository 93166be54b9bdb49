from .tenancy import Tenant, Location
from .auth import Employee, SessionToken
from .catalog import Product, Service
from .registers import CashDrawerSession, DrawerActivity
from .transactions import Transaction, LineItem
from .audit import AuditLog, StoreException, ConsultationRequest

__all__ = [
    'Tenant', 'Location',
    'Employee', 'SessionToken',
    'Product', 'Service',
    'CashDrawerSession', 'DrawerActivity',
    'Transaction', 'LineItem',
    'AuditLog', 'StoreException', 'ConsultationRequest',
]
