"""CRM database client and repositories.

Provides:
- Thread-local connection reuse (MySQL protocol)
- Repository classes for organizations, donors, communications, donations and to-dos
"""

from .client import check_connection, execute_query, get_connection, get_cursor
from .repository import (
    CommunicationRepository,
    DonationRepository,
    DonorRepository,
    OrganizationRepository,
    TodoRecord,
    TodoRepository,
)

__all__ = [
    # Client
    "get_connection",
    "get_cursor",
    "execute_query",
    "check_connection",
    # Dataclasses
    "TodoRecord",
    # Repositories
    "CommunicationRepository",
    "DonationRepository",
    "DonorRepository",
    "OrganizationRepository",
    "TodoRepository",
]
