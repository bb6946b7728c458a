# =============================================================================
# pos_core/offline/__init__.py
# Offline-First User Directory for the POS terminal
# =============================================================================
"""
Offline-First Architecture Module

Staff can sign in whether or not the middleware is reachable. The remote
directory is authoritative; the SQLite copy is the source of truth offline.

Architecture:
------------
┌─────────────────────────────────────────────────────────────────┐
│                    OFFLINE-FIRST ARCHITECTURE                    │
├─────────────────────────────────────────────────────────────────┤
│                                                                  │
│   ┌──────────────────────────────────────────────────────────┐  │
│   │                  CredentialBroker                         │  │
│   │          (login / restore_session / logout)               │  │
│   └──────────────────────────────────────────────────────────┘  │
│              │                │                  │               │
│              ▼                ▼                  ▼               │
│   ┌──────────────────┐ ┌──────────────┐ ┌──────────────────┐   │
│   │ ServiceHealth    │ │ Reconciliation│ │   SessionStore   │   │
│   │ Monitor          │ │ Engine        │ │ (token + cursor) │   │
│   └──────────────────┘ └──────────────┘ └──────────────────┘   │
│              │                │                  │               │
│              ▼                ▼                  ▼               │
│ ┌────────────────┐   one-way sync   ┌──────────────────┐        │
│ │RemoteDirectory │ ───────────────► │    LocalStore    │        │
│ │(API / Supabase)│   remote wins    │     (SQLite)     │        │
│ └────────────────┘                  └──────────────────┘        │
└─────────────────────────────────────────────────────────────────┘

Usage:
------
from pos_core.context import AppContext

with AppContext.create() as ctx:
    session = ctx.broker.login("admin@techcorp.com", "password123")
    print(session.source)                  # remote or local
    print(ctx.monitor.is_online)
"""

from pos_core.offline.models import (
    User,
    Role,
    Session,
    SessionSource,
    SyncCursor,
    SyncCounts,
    SyncResult,
    BulkUpsertResult,
    HealthReport,
    RemoteLogin,
    RegistrationResult,
    UserFilters,
)

from pos_core.offline.retry import (
    RetryPolicy,
    linear_backoff,
    exponential_backoff,
)

from pos_core.offline.local_store import (
    LocalStore,
    hash_secret,
    verify_secret,
)

from pos_core.offline.session_store import SessionStore

from pos_core.offline.health_monitor import (
    ServiceHealthMonitor,
    ConnectionState,
    ConnectionStatus,
)

from pos_core.offline.sync_engine import ReconciliationEngine

__all__ = [
    # Models
    "User",
    "Role",
    "Session",
    "SessionSource",
    "SyncCursor",
    "SyncCounts",
    "SyncResult",
    "BulkUpsertResult",
    "HealthReport",
    "RemoteLogin",
    "RegistrationResult",
    "UserFilters",
    # Retry
    "RetryPolicy",
    "linear_backoff",
    "exponential_backoff",
    # Local persistence
    "LocalStore",
    "SessionStore",
    "hash_secret",
    "verify_secret",
    # Health
    "ServiceHealthMonitor",
    "ConnectionState",
    "ConnectionStatus",
    # Sync
    "ReconciliationEngine",
]
