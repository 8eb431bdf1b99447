"""
Services coordinating the browser: request arbitration, profile discovery and
the browsing session.
"""
