"""HTTP surface of the chat relay; the FastAPI application lives in ``src.server.app``."""
