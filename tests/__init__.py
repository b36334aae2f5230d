"""
Oplog Backup Test Suite.

This package contains:
- unit/: Unit tests (no external services)
- integration/: Orchestrator runs against a temp backup root with fake
  mongodump, oplog and S3 collaborators
"""
