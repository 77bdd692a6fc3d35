"""Namespace layer -- campaign routing and per-namespace user tables.

Provides:
- NamespaceRepository: Async reads/writes on the namespaces table
- NamespaceResolver: Campaign name -> namespace with a TTL snapshot cache
- TableManager: Idempotent provisioning of ``<slug>_user_source`` tables
"""

from src.outreach.namespaces.repository import NamespaceRepository
from src.outreach.namespaces.resolver import NamespaceResolver
from src.outreach.namespaces.tables import (
    TableManager,
    table_name_for_namespace,
    validate_table_name,
)

__all__ = [
    "NamespaceRepository",
    "NamespaceResolver",
    "TableManager",
    "table_name_for_namespace",
    "validate_table_name",
]
