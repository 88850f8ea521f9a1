"""State/store layer.

This package is the single source of truth for how streamed and restored
catalogue content is merged into the live store, and how it is invalidated
when the location changes.
"""
