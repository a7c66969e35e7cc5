"""alertcache — in-memory alert definitions cache with incremental refresh."""
