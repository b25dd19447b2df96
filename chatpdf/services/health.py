"""Health check service for dependency verification."""

import asyncio
import time
from typing import Any, Dict

from chatpdf.core.config import settings
from chatpdf.services.conversation_store import ConversationStore
from chatpdf.services.database import DocumentRegistry
from chatpdf.services.vector_db import VectorDBService


async def check_qdrant(vector_db: VectorDBService) -> Dict[str, Any]:
    """
    Check Qdrant connectivity and health.

    Args:
        vector_db: VectorDBService instance.

    Returns:
        Health status dictionary.
    """
    try:
        start_time = time.time()
        if not vector_db.client:
            return {"status": "unhealthy", "error": "Not connected", "latency_ms": 0}

        collections = await vector_db.client.get_collections()
        latency_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(latency_ms, 2),
            "collections": len(collections.collections),
        }
    except Exception as e:
        return {
            "status": "unhealthy",
            "error": str(e),
            "latency_ms": 0,
        }


async def check_redis(store: ConversationStore) -> Dict[str, Any]:
    """
    Check Redis connectivity and health.

    Args:
        store: ConversationStore instance.

    Returns:
        Health status dictionary.
    """
    try:
        start_time = time.time()
        if not store.client:
            return {"status": "unhealthy", "error": "Not connected", "latency_ms": 0}

        await store.client.ping()
        latency_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(latency_ms, 2),
        }
    except Exception as e:
        return {
            "status": "unhealthy",
            "error": str(e),
            "latency_ms": 0,
        }


async def check_postgres(registry: DocumentRegistry) -> Dict[str, Any]:
    """
    Check PostgreSQL connectivity.

    Args:
        registry: DocumentRegistry instance.

    Returns:
        Health status dictionary.
    """
    try:
        start_time = time.time()
        if not registry.pool:
            return {"status": "unhealthy", "error": "Not connected", "latency_ms": 0}

        async with registry.pool.acquire() as conn:
            await conn.execute("SELECT 1")
        latency_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(latency_ms, 2),
        }
    except Exception as e:
        return {
            "status": "unhealthy",
            "error": str(e),
            "latency_ms": 0,
        }


async def check_openai() -> Dict[str, Any]:
    """
    Check OpenAI API connectivity.

    Returns:
        Health status dictionary.
    """
    try:
        if not settings.openai_api_key:
            return {"status": "not_configured", "error": "API key not set"}

        from openai import AsyncOpenAI
        client = AsyncOpenAI(
            api_key=settings.openai_api_key, base_url=settings.openai_base_url)

        start_time = time.time()
        await client.models.list()
        latency_ms = (time.time() - start_time) * 1000
        await client.close()

        return {
            "status": "healthy",
            "latency_ms": round(latency_ms, 2),
        }
    except Exception as e:
        error_msg = str(e).lower()
        if "api key" in error_msg or "authentication" in error_msg:
            return {"status": "unhealthy", "error": "Invalid API key"}
        return {
            "status": "unhealthy",
            "error": str(e),
            "latency_ms": 0,
        }


async def check_kafka() -> Dict[str, Any]:
    """
    Check Kafka connectivity for the dead letter queue.

    Returns:
        Health status dictionary.
    """
    try:
        from aiokafka import AIOKafkaProducer

        start_time = time.time()
        producer = AIOKafkaProducer(
            bootstrap_servers=settings.kafka_bootstrap_servers)

        await producer.start()
        latency_ms = (time.time() - start_time) * 1000

        try:
            await asyncio.wait_for(producer.stop(), timeout=1.0)
        except asyncio.TimeoutError:
            pass

        return {
            "status": "healthy",
            "latency_ms": round(latency_ms, 2),
        }
    except Exception as e:
        return {
            "status": "unhealthy",
            "error": str(e),
            "latency_ms": 0,
        }
