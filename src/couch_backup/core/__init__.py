"""
Core manager functionality shared by backup operations.
"""
