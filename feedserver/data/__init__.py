"""
Configuration access for the feed.

This package is responsible for:
* Determining the data directory (via env var + sensible default).
* Loading feed.json into FeedOptions snapshots and reloading it on change.
"""
