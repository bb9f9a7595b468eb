"""
Merge provider fields and map them onto market target tables.
"""
