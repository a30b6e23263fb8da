"""
Health check endpoints for system status and backend connectivity.
"""
from fastapi import APIRouter

from ragchat.core.config import settings
from ragchat.services.embedding import get_embedding_provider
from ragchat.services.gemini_client import get_gemini_client
from ragchat.services.llm_client import get_generation_provider
from ragchat.services.ollama_client import get_ollama_client

router = APIRouter(prefix="/health", tags=["health"])


@router.get("")
async def health_check():
    """
    Basic health check endpoint.

    Returns:
        Simple status message indicating the API is running
    """
    return {
        "status": "ok",
        "service": settings.PROJECT_NAME,
    }


@router.get("/full")
async def full_health_check():
    """
    Health check for both backends.

    The cloud backend is reported as configured or not; the local backend is
    probed. Which backend each provider currently routes to is included, along
    with each provider's cached local reachability.

    Returns:
        Status of API, local and cloud backends
    """
    local_status = await get_ollama_client().health_check()
    cloud_status = await get_gemini_client().health_check()

    embedding_provider = get_embedding_provider()
    generation_provider = get_generation_provider()
    embedding_backend = await embedding_provider.select()
    generation_backend = await generation_provider.select()

    cloud_ok = cloud_status.get("status") == "configured"
    local_ok = local_status.get("status") == "healthy"
    usable = cloud_ok or (settings.USE_LOCAL_LLM and local_ok)

    return {
        "status": "healthy" if usable else "degraded",
        "services": {
            "api": {"status": "healthy"},
            "local": local_status,
            "cloud": cloud_status,
        },
        "routing": {
            "embedding": embedding_backend.name,
            "generation": generation_backend.name,
        },
        # None until the provider has probed; USE_LOCAL_LLM=false never probes
        "local_available": {
            "embedding": embedding_provider.availability.cached,
            "generation": generation_provider.availability.cached,
        },
        "config": {
            "use_local_llm": settings.USE_LOCAL_LLM,
            "cloud_chat_model": settings.CLOUD_CHAT_MODEL,
            "cloud_embedding_model": settings.CLOUD_EMBEDDING_MODEL,
            "local_chat_model": settings.LOCAL_CHAT_MODEL,
            "local_embedding_model": settings.LOCAL_EMBEDDING_MODEL,
        },
    }
