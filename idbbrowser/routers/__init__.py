"""
HTTP routes exposing the browsing session to the presentation layer.
"""
