"""
empolis-sync: keep Empolis document metadata in line with local HTML help files.

Quick start:
    import asyncio, httpx
    from empolis_sync import TokenManager, ApiGateway, BatchOrchestrator

    async with httpx.AsyncClient(base_url=settings.base_url) as client:
        tokens = TokenManager(client, credentials)
        gateway = ApiGateway(client, tokens, settings)
        summary = await BatchOrchestrator(gateway).run_batch(records, data_source)
"""

__version__ = "0.3.0"

from .auth import TokenManager
from .batch import BatchOrchestrator
from .config import ApiSettings, AppConfig, load_config, load_credentials
from .errors import (
    ApiError,
    AuthError,
    EmpolisSyncError,
    NotFound,
    ServiceUnavailable,
    ValidationError,
)
from .gateway import ApiGateway, ExactQuery, NaturalLanguageQuery
from .reconcile import Reconciler, plan_update
from .types import (
    BatchSummary,
    Credentials,
    DataSourceSelection,
    Failed,
    FileRecord,
    ServiceHealth,
    Skipped,
    TokenState,
    Updated,
)

__all__ = [
    "__version__",
    "ApiError",
    "ApiGateway",
    "ApiSettings",
    "AppConfig",
    "AuthError",
    "BatchOrchestrator",
    "BatchSummary",
    "Credentials",
    "DataSourceSelection",
    "EmpolisSyncError",
    "ExactQuery",
    "Failed",
    "FileRecord",
    "NaturalLanguageQuery",
    "NotFound",
    "Reconciler",
    "ServiceHealth",
    "ServiceUnavailable",
    "Skipped",
    "TokenManager",
    "TokenState",
    "Updated",
    "ValidationError",
    "load_config",
    "load_credentials",
    "plan_update",
]
