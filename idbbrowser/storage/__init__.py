"""
Storage layer of the browser.

This package contains the engine interface, the in-memory reference engine,
schema snapshots, the lazily filled row store and the cursor streamer.
"""
