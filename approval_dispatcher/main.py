from __future__ import annotations

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from approval_dispatcher import __version__
from approval_dispatcher.api.routes import approvals, runs
from approval_dispatcher.config import get_settings
from approval_dispatcher.core.exceptions import backend_exception_handler, global_exception_handler, http_exception_handler, request_validation_exception_handler, run_conflict_exception_handler, run_not_found_exception_handler
from approval_dispatcher.core.lifespan import lifespan
from approval_dispatcher.core.middleware import RequestLoggingMiddleware
from approval_dispatcher.dispatch.errors import InvalidTransitionError, RunConflictError, RunNotFoundError
from approval_dispatcher.services.backend import BackendError

settings = get_settings()

app = FastAPI(title="Approval Dispatcher", version=__version__, lifespan=lifespan, docs_url=None, redoc_url=None, openapi_url=None)

app.add_middleware(CORSMiddleware, allow_origins=settings.allowed_origins, allow_credentials=True, allow_methods=["GET", "POST", "OPTIONS"], allow_headers=["content-type", "authorization"], expose_headers=["x-request-id"])

# Add exception handlers
app.add_exception_handler(Exception, global_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
app.add_exception_handler(RunNotFoundError, run_not_found_exception_handler)
app.add_exception_handler(RunConflictError, run_conflict_exception_handler)
app.add_exception_handler(InvalidTransitionError, run_conflict_exception_handler)
app.add_exception_handler(BackendError, backend_exception_handler)

# Add middleware
app.add_middleware(RequestLoggingMiddleware)


@app.get("/health", include_in_schema=False)
async def health_check() -> dict[str, str]:
  """Return a simple health status."""
  return {"status": "ok", "version": __version__}


app.include_router(runs.router, prefix="/v1/runs", tags=["runs"])
app.include_router(approvals.router, prefix="/v1/approvals", tags=["approvals"])
