"""
CLI runner module.

Provides commands:
- import: Import a ledger export
- status: Show job status
- reprocess: Re-run a job
- convert: Export to audit JSON without touching the database
- seed: Import blocks from an audit JSON document
- stats: Row counts
- init-config: Write a default config file
"""

from .main import create_cli, main

__all__ = [
    "create_cli",
    "main",
]
