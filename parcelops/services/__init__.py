"""
Business Logic Services Package.

Services depend on the repository layer for data access and receive the
acting user explicitly.

The ``create_services()`` factory wires every repository and service together,
returning a typed dict that the application layer (CLI / views) can consume
without knowing the internal dependency graph.
"""

from __future__ import annotations

from typing import Optional, TypedDict

from parcelops.auth import SessionManager
from parcelops.config import AppConfig
from parcelops.database import DatabaseManager
from parcelops.logger import StructuredLogger, get_logger
from parcelops.repositories.customer_repository import CustomerRepository
from parcelops.repositories.notification_repository import NotificationRepository
from parcelops.repositories.parcel_repository import ParcelRepository
from parcelops.repositories.user_repository import UserRepository
from parcelops.services.auth_service import AuthService
from parcelops.services.customers import CustomerService
from parcelops.services.notifications import NotificationCenter
from parcelops.services.parcel_workflow import ParcelWorkflowService
from parcelops.services.reports import ReportService
from parcelops.services.sms_service import SmsGateway, SmsService, TwilioSmsGateway
from parcelops.services.sync_reconciler import SyncReconcilerService
from parcelops.services.users import UserService
from parcelops.storage.local_cache import LocalCache
from parcelops.storage.record_store import RecordStore, SqliteRecordStore
from parcelops.storage.supabase_record_store import SupabaseRecordStore


class ServiceContainer(TypedDict):
    """Typed container for all application services."""

    auth_service: AuthService
    parcel_workflow_service: ParcelWorkflowService
    customer_service: CustomerService
    user_service: UserService
    report_service: ReportService
    notification_center: NotificationCenter
    sms_service: SmsService
    sync_reconciler: SyncReconcilerService


def create_record_store(
    db: DatabaseManager,
    config: AppConfig,
    logger: StructuredLogger,
) -> Optional[RecordStore]:
    """Build the record store selected by ``RECORD_STORE_BACKEND``.

    Returns ``None`` for the Supabase backend when no client could be
    created; the application then runs on the local cache only.
    """
    default_password = config.DEFAULT_USER_PASSWORD.get_secret_value()
    if config.RECORD_STORE_BACKEND == "supabase":
        if not db.has_supabase:
            logger.warning("Supabase record store selected but not reachable.")
            return None
        return SupabaseRecordStore(db.supabase, logger, default_password)
    return SqliteRecordStore.open(config.record_store_path, logger, default_password)


def create_services(
    db: DatabaseManager,
    config: AppConfig,
    session: SessionManager,
    record_store: Optional[RecordStore],
    sms_gateway: Optional[SmsGateway] = None,
) -> ServiceContainer:
    """
    Wire all repositories and services together.

    This is the single composition root for the service layer.

    Args:
        db: DatabaseManager with the local cache schema initialised.
        config: Application configuration.
        session: Shared session holder.
        record_store: Authoritative store, or ``None`` to stay local.
        sms_gateway: Defaults to the Twilio gateway built from *config*.

    Returns:
        ServiceContainer mapping service names to fully-wired instances.
    """
    logger = get_logger("services")
    cache = LocalCache(db=db, logger=logger)

    # ------------------------------------------------------------------
    # 1. Repositories (data-access layer)
    # ------------------------------------------------------------------
    user_repo = UserRepository(cache=cache, logger=logger)
    customer_repo = CustomerRepository(cache=cache, logger=logger)
    parcel_repo = ParcelRepository(cache=cache, logger=logger)
    notification_repo = NotificationRepository(
        cache=cache, logger=logger, limit=config.NOTIFICATION_LIMIT,
    )

    # ------------------------------------------------------------------
    # 2. Leaf services (no service dependencies)
    # ------------------------------------------------------------------
    sync_reconciler = SyncReconcilerService(
        record_store=record_store,
        cache=cache,
        user_repo=user_repo,
        customer_repo=customer_repo,
        parcel_repo=parcel_repo,
        db=db,
        config=config,
        logger=get_logger("sync"),
    )
    notification_center = NotificationCenter(repo=notification_repo, logger=logger, db=db)
    sms_service = SmsService(
        gateway=sms_gateway or TwilioSmsGateway(config),
        logger=get_logger("sms"),
    )
    report_service = ReportService(
        parcel_repo=parcel_repo,
        customer_repo=customer_repo,
        logger=logger,
    )
    auth_service = AuthService(
        session=session,
        user_repo=user_repo,
        logger=logger,
        record_store=record_store,
    )

    # ------------------------------------------------------------------
    # 3. Mutating services (announce changes to the reconciler)
    # ------------------------------------------------------------------
    parcel_workflow_service = ParcelWorkflowService(
        parcel_repo=parcel_repo,
        customer_repo=customer_repo,
        notifications=notification_center,
        sms=sms_service,
        config=config,
        logger=logger,
        db=db,
        on_change=sync_reconciler.request_push,
    )
    customer_service = CustomerService(
        repo=customer_repo,
        notifications=notification_center,
        logger=logger,
        db=db,
        on_change=sync_reconciler.request_push,
    )
    user_service = UserService(
        repo=user_repo,
        logger=logger,
        db=db,
        on_change=sync_reconciler.request_push,
    )

    return ServiceContainer(
        auth_service=auth_service,
        parcel_workflow_service=parcel_workflow_service,
        customer_service=customer_service,
        user_service=user_service,
        report_service=report_service,
        notification_center=notification_center,
        sms_service=sms_service,
        sync_reconciler=sync_reconciler,
    )
