"""FastAPI application setup for the knowledge assistant."""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from knowledge_assistant.api.dependencies import close_app_context, get_app_context, get_service
from knowledge_assistant.api.routes_admin import router as admin_router
from knowledge_assistant.api.routes_chat import router as chat_router
from knowledge_assistant.api.routes_documents import router as documents_router
from knowledge_assistant.api.routes_query import router as query_router
from knowledge_assistant.core.errors import KnowledgeAssistantError
from knowledge_assistant.core.logging import configure_logging, get_logger

configure_logging()
logger = get_logger(__name__)

app = FastAPI(
    title="Knowledge Assistant",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://127.0.0.1:5173",
        "http://localhost:5173",
        "tauri://localhost",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(documents_router, prefix="/documents", tags=["documents"])
app.include_router(chat_router, prefix="/chats", tags=["chats"])
app.include_router(query_router, prefix="", tags=["query"])
app.include_router(admin_router, prefix="", tags=["admin"])


@app.exception_handler(KnowledgeAssistantError)
async def handle_assistant_error(request: Request, exc: KnowledgeAssistantError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(
            "Request failed",
            extra={"ctx_path": request.url.path, "ctx_error": type(exc).__name__, "ctx_detail": exc.message},
        )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.on_event("startup")
async def startup() -> None:
    """Open the store, rehydrate the index and start the lifecycle worker."""
    get_app_context()
    get_service()


@app.on_event("shutdown")
async def shutdown() -> None:
    await close_app_context()


@app.get("/health", tags=["admin"])
def health() -> dict[str, bool]:
    """Simple liveness check."""
    return {"ok": True}
