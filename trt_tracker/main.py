"""
TRT Tracker API application.
Run: uvicorn trt_tracker.main:app --host 0.0.0.0 --port 8000
"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from trt_tracker.api.routes import router
from trt_tracker.config import LOG_LEVEL
from trt_tracker.core.errors import InvalidConfiguration, MalformedPersistedData, TransportFailure

log = logging.getLogger("trt.api")


def create_app() -> FastAPI:
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app = FastAPI(title="TRT Tracker")
    app.include_router(router)

    @app.exception_handler(TransportFailure)
    async def transport_failure(request: Request, exc: TransportFailure):
        log.error("Persistence failed on %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(
            status_code=503,
            content={"detail": f"Could not save or load your data, please retry: {exc}"},
        )

    @app.exception_handler(InvalidConfiguration)
    async def invalid_configuration(request: Request, exc: InvalidConfiguration):
        return JSONResponse(status_code=422, content={"detail": exc.errors})

    @app.exception_handler(MalformedPersistedData)
    async def malformed_data(request: Request, exc: MalformedPersistedData):
        log.warning("Rejected import: %s", exc)
        return JSONResponse(status_code=422, content={"detail": exc.errors})

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
