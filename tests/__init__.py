"""
Feed Server Test Suite
======================

Test organization mirrors the source code structure:
    tests/
    ├── test_domain/   → versions, models and options parsing
    ├── test_data/     → feed.json loading and hot reload
    ├── test_storage/  → metadata store and content store
    ├── test_services/ → spool, archive reader, overwrite, search, retention, pipeline
    └── test_api/      → the push endpoint
"""
