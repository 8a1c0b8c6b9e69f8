"""Database access for allocator and application records, cron scheduling and verifier authorisation."""

__version__ = "2.2.12"