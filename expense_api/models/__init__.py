"""Central model registry: import all models so Alembic autodiscover works."""

from expense_api.database import Base  # noqa: F401

from expense_api.models.lookup import Category, CostCenter  # noqa: F401
from expense_api.models.spend_request import SpendRequest, RequestItem  # noqa: F401
from expense_api.models.receipt import Receipt  # noqa: F401
from expense_api.models.audit_log import AuditLog  # noqa: F401
