"""
pos_core - offline-first staff directory for the POS terminal.

Subpackages:
    offline   local store, health monitor, reconciliation engine
    remote    middleware, Supabase and mock directories
    auth      credential broker and input validation
    services  staff administration
"""

__version__ = "1.0.0"
