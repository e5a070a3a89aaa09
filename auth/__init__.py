"""auth/ -- Authentication and authorization package for the HRM API.

Layer rule: auth/ imports only stdlib, third-party libraries and core/.
It does NOT import from api/ or directory/.
api/ imports from auth/, not the other way around.
"""
