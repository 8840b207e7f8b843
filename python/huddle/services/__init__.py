"""Business logic services.

Service functions take their collaborators (store, notifier, rate limiter)
as explicit arguments. Route handlers call exactly one of them.
"""
