"""
Logging and audit trail for the couch backup system.
"""
