"""auth/ -- Authentication and session-lifecycle package for CivicWatch.

Layer rule: auth/ imports only stdlib + third-party libraries + core/.
It does NOT import from api/ or reports/.
api/ imports from auth/, not the other way around.
"""
