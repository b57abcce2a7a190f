"""Root entrypoint for the queue scheduler API.

    uvicorn app.main:app --reload

Same app object as `backend.app.main`; the routers, error handlers and the rate
limiter sweeper are all wired there.
"""

from backend.app.main import app  # noqa: F401  re-export
