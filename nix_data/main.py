import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from nix_data.api.packages import router as packages_router
from nix_data.domain.errors import (
    DecodeError,
    FetchError,
    NixDataError,
    ResolveError,
)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Upstream problems are reported as a bad gateway, local store problems as 500.
_UPSTREAM_ERRORS = (ResolveError, FetchError, DecodeError)


app = FastAPI(
    title="nix-data",
    version="0.1.0",
    description="Local cache of the Nix package indexes with version resolution for declared packages.",
)


@app.exception_handler(NixDataError)
async def nix_data_error_handler(request: Request, exc: NixDataError) -> JSONResponse:
    status_code = 502 if isinstance(exc, _UPSTREAM_ERRORS) else 500
    logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(
        status_code=status_code,
        content={"code": exc.code, "detail": str(exc)},
    )


@app.get("/health")
async def health() -> dict:
    """
    Lightweight health check endpoint.
    """
    return {"status": "ok"}


app.include_router(packages_router, tags=["packages"])


if __name__ == "__main__":
    """
    Allow running `python -m nix_data.main` to start the Uvicorn development server.
    """
    import uvicorn

    uvicorn.run(
        "nix_data.main:app",
        host="127.0.0.1",
        port=8000,
        reload=True,
    )
