"""
HERA Universal API

Schema-driven HTTP layer that maps business entities and transactions
onto the Sacred Six tables through Supabase RPC calls.
"""

__version__ = "0.1.0"
