"""
FastAPI dependency providers wiring the pipeline together.
"""
from functools import lru_cache

from fastapi import Depends
from sqlalchemy.orm import Session

from .config import get_settings
from .database import get_db
from .worker.broker import QStashBroker
from .worker.delivery import DatabaseTokenStore, DeliveryClient, HttpDeliveryClient, TokenStore
from .worker.executor import PostExecutor
from .worker.scheduler import PostScheduler
from .worker.signature import SignatureVerifier
from .worker.store import JobStore


@lru_cache()
def get_broker() -> QStashBroker:
    settings = get_settings()
    return QStashBroker(
        token=settings.qstash_token,
        base_url=settings.qstash_url,
        timeout=settings.broker_timeout_seconds,
    )


@lru_cache()
def get_signature_verifier() -> SignatureVerifier:
    settings = get_settings()
    return SignatureVerifier(
        current_key=settings.qstash_current_signing_key,
        next_key=settings.qstash_next_signing_key,
        callback_url=settings.callback_url,
        leeway=settings.signature_leeway_seconds,
    )


@lru_cache()
def get_delivery_client() -> DeliveryClient:
    settings = get_settings()
    return HttpDeliveryClient(
        url=settings.delivery_url,
        timeout=settings.delivery_timeout_seconds,
        max_attempts=settings.delivery_max_attempts,
    )


def get_job_store(db: Session = Depends(get_db)) -> JobStore:
    return JobStore(db, lease_seconds=get_settings().execution_lease_seconds)


def get_token_store(db: Session = Depends(get_db)) -> TokenStore:
    return DatabaseTokenStore(db)


def get_scheduler(
    store: JobStore = Depends(get_job_store),
    broker: QStashBroker = Depends(get_broker),
) -> PostScheduler:
    settings = get_settings()
    return PostScheduler(
        store,
        broker,
        callback_url=settings.callback_url,
        max_schedule_days=settings.max_schedule_days,
        retry_delay_seconds=settings.retry_delay_seconds,
    )


def get_executor(
    store: JobStore = Depends(get_job_store),
    verifier: SignatureVerifier = Depends(get_signature_verifier),
    delivery: DeliveryClient = Depends(get_delivery_client),
    tokens: TokenStore = Depends(get_token_store),
) -> PostExecutor:
    return PostExecutor(store, verifier, delivery, tokens)
