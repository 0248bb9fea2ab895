"""Reference file service for saved maps (FastAPI)."""
