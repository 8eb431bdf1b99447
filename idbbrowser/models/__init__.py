"""
Data models of the browser: schema snapshots, grid rows and structured values.
"""
