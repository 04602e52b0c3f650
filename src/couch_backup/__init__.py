"""
Incremental backup system for CouchDB-compatible document stores.

Copies every new document revision of each dataset store into a dedicated
backup store, resuming from a per-dataset checkpoint on every poll cycle.
"""

__version__ = "1.0.0"
