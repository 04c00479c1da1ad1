"""Authentication module (email/password accounts, bearer tokens).

Services:
    - AuthService: registration, login and token authentication.
    - TokenStore: process-local opaque bearer tokens with expiry.
"""
