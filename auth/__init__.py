"""auth/ -- Credential verification core for SlateHub.

Passwords (Argon2id), session tokens (JWT), verification codes, and the
cookie-based request authenticator.

Layer rule: auth/ imports only stdlib + third-party libraries (and core/ for
configuration in callers, never the other way around). It does NOT import
from api/. api/ imports from auth/.
"""
