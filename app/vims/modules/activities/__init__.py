"""
Activity log module: append-only audit of actions taken by or on an account.
"""
