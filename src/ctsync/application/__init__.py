"""
Application layer - use cases built on the core ports.
"""
