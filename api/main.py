from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.routers import (
    chat,
    data_upload,
    debug,
    files,
    health,
    messages,
    session,
)
from db.database import dispose_db, init_db
from doc_chat.exception.custom_exception import DocumentChatException
from doc_chat.logger import GLOBAL_LOGGER as log


@asynccontextmanager
async def lifespan(app: FastAPI):
    log.info("Application startup initiated")
    await init_db()
    yield
    await dispose_db()
    log.info("Application shutdown")


app = FastAPI(title="Document Chat RAG Backend", version="1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(DocumentChatException)
async def document_chat_exception_handler(request: Request, exc: DocumentChatException):
    if exc.status_code >= 500:
        log.error("Request failed | path=%s | error=%s", request.url.path, exc.details())
    else:
        log.warning(
            "Request rejected | path=%s | status=%d | error=%s",
            request.url.path,
            exc.status_code,
            str(exc),
        )
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc)})


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    log.exception("Unhandled error | path=%s", request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal Server Error"})


# Router Registration
app.include_router(health.router, prefix="/health", tags=["health"])
app.include_router(chat.router, tags=["chat"])
app.include_router(data_upload.router, tags=["upload"])
app.include_router(session.router, tags=["conversations"])
app.include_router(files.router, tags=["files"])
app.include_router(messages.router, tags=["messages"])
app.include_router(debug.router, tags=["debug"])


@app.get("/")
async def root():
    return {"message": "Backend is running"}
