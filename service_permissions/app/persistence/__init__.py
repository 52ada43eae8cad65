"""
Persistence package for grants and rules.

The engine only depends on the repository protocols in ``repositories``.
``memory`` holds the in-process stores and ``postgres`` the asyncpg-backed
store; both keep records in insertion order.
"""
