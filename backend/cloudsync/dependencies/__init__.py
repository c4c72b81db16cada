"""Dependency helpers (package marker).

Real implementations are placed in dedicated sub-modules so that the package
root remains intentionally empty.
"""
