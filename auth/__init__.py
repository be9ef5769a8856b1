"""auth/ -- Credential hashing, user directory, sessions, and the login flow for Workdesk.

Layer rule: auth/ imports only stdlib, third-party libraries, core/, storage/,
and remote/. It does NOT import from api/.
api/ and the CLI import from auth/, not the other way around.
"""
