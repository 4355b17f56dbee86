from fastapi import FastAPI
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.responses import Response

from app.api.mailbox import router as mailbox_router
from app.api.notifications import router as notifications_router
from app.api.workflow_documents import router as workflow_documents_router
from app.config import settings
from app.errors import register_error_handlers
from app.logging import configure_logging

app = FastAPI(title=f"{settings.brand_name} API")

configure_logging()
register_error_handlers(app)


def _include_api_router(router, dependencies=None):
    app.include_router(router, dependencies=dependencies)
    app.include_router(router, prefix="/api/v1", dependencies=dependencies)


_include_api_router(workflow_documents_router)
_include_api_router(mailbox_router)
_include_api_router(notifications_router)


@app.get("/health")
def health_check():
    return {"status": "ok"}


@app.get("/metrics")
def metrics():
    data = generate_latest()
    return Response(content=data, media_type=CONTENT_TYPE_LATEST)
