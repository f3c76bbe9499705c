"""HTTP session API: FastAPI app, Pydantic models, and the session registry."""
