"""
Writers for target tables.
"""
