"""Main FastAPI application for the DealerDesk back office."""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from dealerdesk.api import auth, dealers, documents, invoices, stock, taxonomy, uploads
from dealerdesk.core import services
from dealerdesk.core.logging_config import configure_logging
from dealerdesk.core.storage import MEDIA_ROOT


configure_logging()


@asynccontextmanager
async def _lifespan(_: FastAPI):
    services.ensure_database_ready()
    yield


app = FastAPI(title="DealerDesk API", version="1.0.0", lifespan=_lifespan)

app.add_middleware(
    ProxyHeadersMiddleware,
    trusted_hosts="*",
)

app.include_router(auth.router, prefix="/api/auth", tags=["auth"])
app.include_router(dealers.router, prefix="/api/dealers", tags=["dealers"])
app.include_router(uploads.router, prefix="/api/upload", tags=["uploads"])
app.include_router(stock.router, prefix="/api/stock", tags=["stock"])
app.include_router(invoices.router, prefix="/api/invoices", tags=["invoices"])
app.include_router(documents.router, prefix="/api/vehicle-documents", tags=["vehicle-documents"])
app.include_router(taxonomy.router, prefix="/api/taxonomy", tags=["taxonomy"])

app.mount("/media", StaticFiles(directory=MEDIA_ROOT), name="media")


@app.get("/health")
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}
