"""
ctsync - keep locally authored content-type definitions in sync with a
remote CMS, with version history, three-way conflict detection and a
review queue for changes that cannot be merged automatically.
"""

__version__ = "0.1.0"
