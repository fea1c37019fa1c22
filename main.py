import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from clinic_notify.container import NotificationServices, build_services
from clinic_notify.domain.exceptions import InvalidRequest, NotificationNotFound
from clinic_notify.interfaces.api.routes import register_routes


def create_app(services: NotificationServices | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    ``services`` lets callers supply pre-built notification services (for
    example with fake channel transports); by default they are built from
    the environment settings.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Create tables, start the delivery workers and stop them on shutdown."""

        notification_services = services or build_services()
        if services is None:
            from clinic_notify.infrastructure.database import initialize_database

            initialize_database()
        app.state.notification_services = notification_services
        notification_services.start(asyncio.get_running_loop())
        yield
        notification_services.stop()

    app = FastAPI(lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(InvalidRequest)
    async def _invalid_request(_: Request, exc: InvalidRequest) -> JSONResponse:
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})

    @app.exception_handler(NotificationNotFound)
    async def _not_found(_: Request, exc: NotificationNotFound) -> JSONResponse:
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})

    register_routes(app)
    return app


app = create_app()
