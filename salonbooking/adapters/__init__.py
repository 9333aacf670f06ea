"""
Adapters layer - Appointment persistence (SQL database, hosted backend).
"""

from .backend_client import BackendRestClient
from .sql_store import SqlAppointmentStore, create_store_engine

__all__ = ["BackendRestClient", "SqlAppointmentStore", "create_store_engine"]
