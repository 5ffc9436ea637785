"""
Inverted index build and query package.

- tokenizer: markup-blind word extraction shared by indexing and querying
- models: posting and document value objects
- storage: SQLite segment writer, publisher and read-only segment handles
- indexer: corpus walk that builds and publishes a segment
- engine: term lookup and frequency ranking over the published segment
"""
