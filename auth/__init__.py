"""auth/ -- Authentication and authorization engine for tenantguard.

Layer rule: auth/ imports only stdlib, third-party libraries and core/.
auth/dependencies.py is the only module that imports fastapi.
"""
