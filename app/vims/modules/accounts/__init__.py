"""
Account lifecycle module.

- Owns user status, lock and login-attempt transitions
- Every mutation writes exactly one activity record in the same transaction
"""
