from fastapi import APIRouter
from app.api.v1.endpoints import chat, documents, roles, sources

api_router = APIRouter()
api_router.include_router(roles.router, tags=["roles"])
api_router.include_router(documents.router, prefix="/documents", tags=["documents"])
api_router.include_router(sources.router, tags=["sources"])
api_router.include_router(chat.router, tags=["chat"])
