from .encryption import ensure_customer_managed_key
from .nag import configure_security_checks
from .outputs import OutputManager

__all__ = ["OutputManager", "configure_security_checks", "ensure_customer_managed_key"]
