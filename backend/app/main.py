#!/usr/bin/env python3
"""
Main FastAPI application for the store assistant.

Admin endpoints manage the store configuration (uploads, documents, save);
chat endpoints drive the embeddable widget.
"""

import os
from typing import List, Optional

from fastapi import Depends, FastAPI, File, HTTPException, Query, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from fastapi.staticfiles import StaticFiles

from .config import Config, ConfigurationError
from .controller import Controller, UnknownSessionError
from .ingest import FileReadError
from .session import SessionBusyError
from ..schemas.io_models import (
    ChatMessage,
    ConfigStatus,
    EmbedCodeResponse,
    KnowledgeDocument,
    ProductUploadResponse,
    QueryRequest,
    QueryResponse,
    SessionCreateRequest,
    SessionCreateResponse,
    StoreConfiguration,
)
from ..utils.logger import get_logger

logger = get_logger("api")

NO_PRODUCTS_ERROR = "Could not find valid products in CSV. Ensure headers include 'name', 'price', etc."

# Initialize FastAPI app
app = FastAPI(
    title="WooGenie Store Assistant API",
    description="Store-grounded chat assistant backed by Gemini",
    version="1.0.0"
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # the widget is embedded on the store's own domain
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_controller: Optional[Controller] = None


def get_controller() -> Controller:
    global _controller
    if _controller is None:
        _controller = Controller()
    return _controller


def _conversation_or_404(controller: Controller, session_id: str):
    try:
        return controller.get_conversation(session_id)
    except UnknownSessionError:
        raise HTTPException(status_code=404, detail=f"Unknown session {session_id}")


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


@app.get("/config/status", response_model=ConfigStatus)
async def config_status(controller: Controller = Depends(get_controller)):
    """Tell the UI whether chat can be offered before it tries."""
    configured, error = controller.config_status()
    return ConfigStatus(configured=configured, error=error,
                        knowledge_mode=Config.KNOWLEDGE_MODE, model=Config.GEMINI_MODEL)


@app.get("/config", response_model=StoreConfiguration)
async def get_config(controller: Controller = Depends(get_controller)):
    return controller.config


@app.put("/config", response_model=StoreConfiguration)
async def save_config(config: StoreConfiguration, controller: Controller = Depends(get_controller)):
    """Replace the whole configuration and persist it."""
    return controller.save_config(config)


@app.post("/config/save", response_model=StoreConfiguration)
async def persist_config(controller: Controller = Depends(get_controller)):
    """Persist the working configuration (after uploads)."""
    return controller.save_config()


@app.post("/config/demo", response_model=StoreConfiguration)
async def load_demo(controller: Controller = Depends(get_controller)):
    return controller.load_demo()


@app.post("/products/upload", response_model=ProductUploadResponse)
async def upload_products(
    file: UploadFile = File(...),
    mode: str = Query("replace", pattern="^(replace|append)$"),
    controller: Controller = Depends(get_controller),
):
    """Import a product CSV into the working catalog."""
    raw = await file.read()
    try:
        products = controller.import_products(raw, file.filename or "products.csv", mode=mode)
    except FileReadError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not products:
        raise HTTPException(status_code=422, detail=NO_PRODUCTS_ERROR)
    return ProductUploadResponse(imported=len(products), total=len(controller.config.products), mode=mode)


@app.post("/documents/upload", response_model=KnowledgeDocument)
async def upload_document(file: UploadFile = File(...), controller: Controller = Depends(get_controller)):
    """Add a policy or reference document (.txt / .md)."""
    raw = await file.read()
    try:
        return controller.add_document(file.filename or "document.txt", raw)
    except FileReadError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.delete("/documents/{doc_id}")
async def delete_document(doc_id: str, controller: Controller = Depends(get_controller)):
    if not controller.remove_document(doc_id):
        raise HTTPException(status_code=404, detail=f"Document {doc_id} not found")
    return {"deleted": True, "doc_id": doc_id}


@app.get("/embed-code", response_model=EmbedCodeResponse)
async def embed_code(controller: Controller = Depends(get_controller)):
    return EmbedCodeResponse(store_name=controller.config.store_name, code=controller.embed_code())


@app.post("/session", response_model=SessionCreateResponse)
async def create_session(request: SessionCreateRequest, controller: Controller = Depends(get_controller)):
    """
    Create a new chat session.

    Args:
        request: Session creation request

    Returns:
        Session creation response with the opening messages
    """
    try:
        session_id, created, conv = controller.create_session(request.session_id)
    except ConfigurationError as e:
        raise HTTPException(status_code=503, detail=f"Assistant not configured: {e}")
    return SessionCreateResponse(session_id=session_id, created=created, messages=conv.log.to_list())


@app.post("/session/{session_id}/reset", response_model=SessionCreateResponse)
async def reset_session(session_id: str, controller: Controller = Depends(get_controller)):
    _conversation_or_404(controller, session_id)
    conv = controller.reset_conversation(session_id)
    return SessionCreateResponse(session_id=session_id, created=True, messages=conv.log.to_list())


@app.delete("/session/{session_id}")
async def close_session(session_id: str, controller: Controller = Depends(get_controller)):
    """Forget a widget session and its conversation log."""
    if not controller.close_session(session_id):
        raise HTTPException(status_code=404, detail=f"Unknown session {session_id}")
    return {"closed": True, "session_id": session_id}


@app.get("/session/{session_id}/messages", response_model=List[ChatMessage])
async def get_messages(session_id: str, controller: Controller = Depends(get_controller)):
    return _conversation_or_404(controller, session_id).log.to_list()


@app.post("/query", response_model=QueryResponse)
def query_chatbot(request: QueryRequest, controller: Controller = Depends(get_controller)):
    """Send a message and return the complete reply."""
    _conversation_or_404(controller, request.session_id)
    logger.info(f"Query for session {request.session_id}: {request.query[:80]!r}")
    try:
        message = controller.ask(request.session_id, request.query)
    except SessionBusyError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return QueryResponse(session_id=request.session_id, response=message.text, message=message)


@app.post("/query/stream")
def query_chatbot_stream(request: QueryRequest, controller: Controller = Depends(get_controller)):
    """Send a message and stream the reply as plain-text fragments."""
    _conversation_or_404(controller, request.session_id)
    logger.info(f"Streaming query for session {request.session_id}: {request.query[:80]!r}")
    try:
        fragments = controller.ask_stream(request.session_id, request.query)
    except SessionBusyError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return StreamingResponse(fragments, media_type="text/plain; charset=utf-8")


# Serve the widget/admin bundle when it has been built into frontend/public
static_files_path = os.path.join(os.path.dirname(__file__), "..", "..", "frontend", "public")
if os.path.exists(static_files_path):
    app.mount("/", StaticFiles(directory=static_files_path, html=True), name="static")

if __name__ == "__main__":
    import uvicorn
    Config.debug_print()
    uvicorn.run(app, host="0.0.0.0", port=8000)
