"""Health check utilities."""

from typing import Dict

from chatpdf.core.dependencies import ServiceContainer
from chatpdf.services.health import (
    check_kafka,
    check_openai,
    check_postgres,
    check_qdrant,
    check_redis,
)


async def check_all_dependencies(
    container: ServiceContainer,
    include_kafka: bool = False,
) -> Dict:
    """
    Check all service dependencies.

    Args:
        container: Service container holding the connected clients.
        include_kafka: Whether to check Kafka.

    Returns:
        Dictionary with overall status and individual service statuses.
    """
    services = {
        "qdrant": await check_qdrant(container.vector_db),
        "redis": await check_redis(container.conversation_store),
        "postgres": await check_postgres(container.registry),
        "openai": await check_openai(),
    }
    if include_kafka:
        services["kafka"] = await check_kafka()

    overall_status = "healthy"
    for name, status in services.items():
        if name == "openai":
            if status.get("status") == "unhealthy":
                overall_status = "unhealthy"
        elif status.get("status") != "healthy":
            overall_status = "unhealthy"

    return {"status": overall_status, "services": services}


async def check_readiness(container: ServiceContainer) -> Dict:
    """
    Check service readiness.

    Args:
        container: Service container holding the connected clients.

    Returns:
        Readiness status dictionary.
    """
    qdrant_status = await check_qdrant(container.vector_db)
    redis_status = await check_redis(container.conversation_store)
    postgres_status = await check_postgres(container.registry)

    result = {
        "qdrant": qdrant_status.get("status") == "healthy",
        "redis": redis_status.get("status") == "healthy",
        "postgres": postgres_status.get("status") == "healthy",
    }
    result["ready"] = all(result.values())
    return result
