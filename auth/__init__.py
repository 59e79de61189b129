"""auth/ -- Authentication and authorization package for UserGate.

Layer rule: auth/ imports stdlib, third-party libraries and core.config
(services.py only). It does NOT import from api/.
api/ imports from auth/, not the other way around. dependencies.py is the
single module that knows about FastAPI.
"""
