"""auth/ -- Authentication package for Gatehouse.

Layer rule: auth/ imports only stdlib, third-party libraries, and core/.
It does NOT import from api/, cache/, or options/.
api/ imports from auth/, not the other way around.
"""
