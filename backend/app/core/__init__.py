"""Core Layer — framework-free types shared by every other layer.

Invariants:
    - No module in core/ imports from api/, infrastructure/, or the server bootstrap
"""
