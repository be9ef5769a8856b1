"""remote/ -- Shared remote document store client and the directory mirror.

Layer rule: remote/firestore.py imports only stdlib + third-party libraries
and core/. remote/mirror.py may import auth/ models and schemas for the
record shape. Nothing in remote/ imports from api/.
"""
