"""Market data services: provider client, cache stores and the cache-aside orchestrator."""
