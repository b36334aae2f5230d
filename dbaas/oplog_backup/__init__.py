"""
Oplog Backup - Incremental MongoDB replica-set backups.

A backup chain starts with a full mongodump and continues with oplog
segments shipped on every later run:

    ┌──────────────┐     ┌──────────────┐     ┌──────────────┐
    │  Full dump   │────▶│ Oplog segment│────▶│ Oplog segment│────▶ ...
    │ (anchor ts)  │     │ anchor..t1   │     │ t1..t2       │
    └──────────────┘     └──────────────┘     └──────────────┘
            │                    │                    │
            └────────────────────┼────────────────────┘
                                 ▼
                        <backupRoot>/<chain>/  ──▶  S3

Invariants:
    - The anchor position is read before the full dump starts
    - Every segment starts exactly where the previous one ended
    - State files are written only after the data they describe is on disk
    - Stored positions never move backwards within a chain

How to change safely:
    - Keep the on-disk state format backward compatible
    - Never overwrite an existing chain folder
"""

from ._version import __version__

__all__ = ["__version__"]
