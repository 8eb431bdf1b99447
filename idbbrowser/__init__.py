"""
IndexedDB browser core.

Race-free asynchronous browsing of IndexedDB-style databases: schema
snapshots, arbitration of overlapping loads, a lazily filled row store and
cursor-driven record streaming.
"""

__version__ = "0.1.0"
