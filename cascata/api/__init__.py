"""API HTTP da cascata de SLA (FastAPI)."""
