from fastapi import FastAPI, Depends, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, StreamingResponse
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from typing import Optional, Union
import logging

logger = logging.getLogger(__name__)

# Local imports
from config import Settings
from database import create_db_engine, create_session_factory, session_scope
from dtos.chat_request import ChatRequest
from exceptions import ChatServiceError, ThreadNotFoundError, ValidationError
from graph import build_chat_graph
from models import Base, Thread
from schemas import (
    ThreadCreate, ThreadUpdate, ThreadResponse, MessageResponse,
    ThreadEnvelope, ThreadListResponse, ThreadDetailResponse, DeleteResponse,
    ModelListResponse,
)
from services import ChatRelay, ModelCatalog, ProviderRegistry, ThreadService, list_models
from services.threads import normalize_content, thread_metadata
from sqlalchemy.orm import Session
from sqlalchemy import text

STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def to_thread_response(thread: Thread) -> ThreadResponse:
    return ThreadResponse(
        id=thread.id,
        owner_id=thread.owner_id,
        title=thread.title,
        metadata=thread_metadata(thread),
        created_at=thread.created_at,
        updated_at=thread.updated_at
    )


def get_db(request: Request):
    """Database session dependency."""
    yield from session_scope(request.app.state.session_factory)


def get_relay(request: Request) -> ChatRelay:
    return request.app.state.relay


def get_owner_id(request: Request, owner_id: Optional[str] = None) -> str:
    """Explicit owner id, else the X-User-ID header, else the single-tenant placeholder."""
    if owner_id:
        return owner_id
    return request.headers.get("X-User-ID") or request.app.state.settings.default_owner_id


def summarize_validation_errors(exc: RequestValidationError) -> str:
    """Readable summary of the invalid fields, e.g. "temperature: Input should be ..."."""
    problems = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error.get("loc", ()) if part not in ("body", "query"))
        message = error.get("msg", "Invalid value")
        problems.append(f"{field}: {message}" if field and error.get("type") != "json_invalid" else message)
    return "; ".join(problems) or "Invalid request"


def create_app(
    settings: Optional[Settings] = None,
    registry: Optional[ProviderRegistry] = None,
    engine=None,
    catalog: Optional[ModelCatalog] = None
) -> FastAPI:
    settings = settings or Settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        db_engine = engine if engine is not None else create_db_engine(settings)

        # Create tables if they don't exist
        Base.metadata.create_all(bind=db_engine)
        logger.info("Session store initialized")

        app.state.engine = db_engine
        app.state.session_factory = create_session_factory(db_engine)
        app.state.registry = registry or ProviderRegistry(settings.provider_credentials())
        app.state.model_catalog = catalog or ModelCatalog(
            gateway_url=settings.models_gateway_url,
            cache_seconds=settings.models_cache_seconds,
            timeout=settings.models_fetch_timeout
        )
        app.state.graph = build_chat_graph()
        app.state.relay = ChatRelay(
            session_factory=app.state.session_factory,
            registry=app.state.registry,
            graph=app.state.graph,
            settings=settings
        )

        yield

        db_engine.dispose()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan
    )
    app.state.settings = settings

    # CORS configuration
    origins = settings.origins or ["*"]

    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["*"],
        max_age=3600
    )

    @app.exception_handler(ChatServiceError)
    async def chat_service_error_handler(request: Request, exc: ChatServiceError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    @app.exception_handler(RequestValidationError)
    async def request_validation_error_handler(request: Request, exc: RequestValidationError):
        message = summarize_validation_errors(exc)
        logger.info(f"{request.method} {request.url.path} rejected: {message}")
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": message})

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": str(exc) or "Internal Server Error"}
        )

    @app.get("/")
    async def root():
        return {"message": "Hello World", "status": "running"}

    @app.get("/health")
    async def health_check():
        return {"status": "healthy", "service": "langgraph-chat-relay"}

    @app.get("/health/detailed")
    async def detailed_health_check(request: Request, db: Session = Depends(get_db)):
        """Database reachability and which provider families have credentials."""
        health_status = {
            "status": "healthy",
            "service": "langgraph-chat-relay",
            "checks": {}
        }

        try:
            db.execute(text("SELECT 1"))
            health_status["checks"]["database"] = {"status": "healthy"}
        except Exception as e:
            health_status["checks"]["database"] = {"status": "unhealthy", "error": str(e)}
            health_status["status"] = "unhealthy"

        for family, creds in request.app.state.registry.credentials.items():
            health_status["checks"][family] = {
                "status": "configured" if creds.configured else "not_configured",
                "api_key_var": creds.api_key_var,
                "base_url_var": creds.base_url_var,
            }

        return health_status

    @app.get("/models", response_model=ModelListResponse)
    async def get_models(request: Request) -> ModelListResponse:
        """Models served by the gateway (or the fallback list), flagged by whether their provider is configured."""
        credentials = request.app.state.registry.credentials
        entries, fallback, fetched_at = await request.app.state.model_catalog.get_entries()
        return ModelListResponse(
            models=list_models(credentials, extra_model_ids=[settings.default_model_id], entries=entries),
            providers=[family for family, creds in credentials.items() if creds.configured],
            default_model_id=settings.default_model_id,
            fallback=fallback,
            fetched_at=fetched_at
        )

    # Thread management endpoints
    @app.post("/threads", response_model=ThreadEnvelope)
    async def create_thread(
        thread: ThreadCreate,
        request: Request,
        owner_id: Optional[str] = Query(None, alias="ownerId"),
        db: Session = Depends(get_db)
    ) -> ThreadEnvelope:
        """Create a new conversation thread."""
        owner = get_owner_id(request, thread.owner_id or owner_id)

        db_thread = ThreadService.create_thread(
            db=db,
            owner_id=owner,
            thread_data=thread
        )

        return ThreadEnvelope(thread=to_thread_response(db_thread))

    @app.get("/threads", response_model=Union[ThreadDetailResponse, ThreadListResponse])
    async def get_threads(
        request: Request,
        thread_id: Optional[str] = Query(None, alias="threadId"),
        owner_id: Optional[str] = Query(None, alias="ownerId"),
        db: Session = Depends(get_db)
    ):
        """List an owner's threads, or fetch one thread with its messages."""
        owner = get_owner_id(request, owner_id)

        if thread_id:
            thread = ThreadService.get_thread(db=db, thread_id=thread_id, owner_id=owner)
            if not thread:
                raise ThreadNotFoundError(thread_id)

            messages = ThreadService.get_messages(db=db, thread_id=thread.id)
            return ThreadDetailResponse(
                thread=to_thread_response(thread),
                messages=[
                    MessageResponse(role=msg.role, content=normalize_content(msg.content))
                    for msg in messages
                ]
            )

        threads = ThreadService.get_owner_threads(db=db, owner_id=owner)
        return ThreadListResponse(threads=[to_thread_response(thread) for thread in threads])

    @app.patch("/threads", response_model=ThreadEnvelope)
    async def update_thread(
        thread_update: ThreadUpdate,
        request: Request,
        thread_id: Optional[str] = Query(None, alias="threadId"),
        owner_id: Optional[str] = Query(None, alias="ownerId"),
        db: Session = Depends(get_db)
    ) -> ThreadEnvelope:
        """Update a thread's title or metadata."""
        if not thread_id:
            raise ValidationError("Thread ID required")

        updated_thread = ThreadService.update_thread(
            db=db,
            thread_id=thread_id,
            owner_id=get_owner_id(request, owner_id),
            thread_update=thread_update
        )

        if not updated_thread:
            raise ThreadNotFoundError(thread_id)

        return ThreadEnvelope(thread=to_thread_response(updated_thread))

    @app.delete("/threads", response_model=DeleteResponse)
    async def delete_thread(
        thread_id: Optional[str] = Query(None, alias="threadId"),
        db: Session = Depends(get_db)
    ) -> DeleteResponse:
        """Delete a thread and its messages. Unknown ids succeed silently."""
        if not thread_id:
            raise ValidationError("Thread ID required")

        ThreadService.delete_thread(db=db, thread_id=thread_id)

        return DeleteResponse(success=True)

    # Chat endpoint: creates a conversation or streams one turn
    @app.post("/chat")
    async def chat(
        req: ChatRequest,
        request: Request,
        relay: ChatRelay = Depends(get_relay)
    ):
        owner = get_owner_id(request, req.owner_id)

        if req.new_conversation:
            thread = relay.start_thread(owner_id=owner, model_id=req.model_id)
            return {"success": True, "threadId": thread.id}

        turn = relay.prepare_turn(req, owner)

        return StreamingResponse(
            relay.stream_turn(turn),
            media_type="text/event-stream",
            headers=STREAM_HEADERS
        )

    return app


app = create_app()
