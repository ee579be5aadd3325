"""auth/ -- Authentication and authorization package for AccessGate.

Token codec, password hashing, the Authenticator and the user repository.

Layer rule: auth/ imports only stdlib, third-party libraries, core/ and store/.
It does NOT import from api/ or access/.
api/ imports from auth/, not the other way around.
"""
