"""Knowledge base — flat-file entries injected as context into AI prompts.

Layout:
    data/
    ├── knowledge-base.json            # {entries, lastUpdated, version}
    └── corrupted-backup-<ts>.json     # Quarantined unparseable files
    backups/
    └── safety-backup-<ts>.json        # Pre-write snapshots (5 most recent)

A bare JSON array in knowledge-base.json is the legacy format and is migrated
on first load.
"""
