"""Core domain package for tagwatch.

Core contains the release reconciliation loop, tag cache rules, and
registration logic without any Telegram, GitHub, or storage-specific code,
keeping the business logic portable.
"""
