"""Domain layer (pure logic).

- Keep financial product rules, market tables and settlement math here.
- Avoid I/O: no Redis, no HTTP/FastAPI, no environment lookups.
- Prefer deterministic functions (random.Random passed in as an argument when needed).
"""
