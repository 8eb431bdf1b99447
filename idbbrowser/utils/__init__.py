"""
Shared helpers: configuration, logging, errors, timers, origin decoding and
display formatting.
"""
