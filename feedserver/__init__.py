"""
Simple NuGet feed server.

Accepts pushed .nupkg packages and stores them in a JSON-on-disk metadata
store, a file-system content store and an in-memory search index.
"""
