"""
Operator API: health, queue progress, queue actions and run history.
"""
