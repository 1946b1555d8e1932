# Entry point: uvicorn main:app --reload
from safemove.main import app  # noqa: F401
