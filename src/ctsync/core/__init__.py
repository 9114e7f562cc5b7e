"""
Core layer - domain model, ports and wiring. No adapter imports at load time.
"""
