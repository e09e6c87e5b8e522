"""Adapters that connect the tagwatch core to SQLite, GitHub, and Telegram."""
