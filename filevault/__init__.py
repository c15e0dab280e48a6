"""
FileVault lifecycle engine.

Metadata state machine behind tiered file storage: download-driven retention,
hot/cold tier migration, deduplication, quota accounting and verification
codes.
"""
__version__ = "1.0.0"
