"""
api package: FastAPI routers of the memo classifier.

- health: liveness check at GET /health
- classify: POST /api/classify and POST /api/tags
- users: per-user categories, tags, tag limit and session reset
"""
