import logging
import os
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol, Sequence

from app.models import DeletionReport, ImageRef
from app.services.account_directory import AccountDirectory, account_directory
from app.services.asset_store import LocalAssetStore, asset_store
from app.services.catalog import Catalog, catalog
from app.services.errors import StoreNotFoundError, StorePermissionError
from app.services.notification_store import NotificationStore, notification_store
from app.services.rating_aggregator import RatingAggregator, rating_aggregator

logger = logging.getLogger(__name__)


def _read_max_workers() -> int:
    try:
        value = int(os.getenv("CASCADE_MAX_WORKERS", "4"))
    except ValueError:
        return 4
    return value if value > 0 else 4


@dataclass
class DependentOutcome:
    removed: int = 0
    failed_assets: List[str] = field(default_factory=list)


class DependentDeleter(Protocol):
    """Removes one kind of record that exists only by reference to an account."""

    name: str

    def delete_for(self, account_id: str) -> DependentOutcome: ...


def purge_assets(store: LocalAssetStore, images: Sequence[ImageRef]) -> List[str]:
    """Best-effort blob cleanup; returns the asset ids that could not be deleted."""
    failed: List[str] = []
    for image in images:
        try:
            store.delete(image.asset_id)
        except Exception:
            logger.warning("Asset %s could not be deleted; blob may be orphaned", image.asset_id, exc_info=True)
            failed.append(image.asset_id)
    return failed


class OwnedCatalogDeleter:
    def __init__(self, name: str, kind: str, items: Catalog, assets: LocalAssetStore):
        self.name = name
        self._kind = kind
        self._catalog = items
        self._assets = assets

    def delete_for(self, account_id: str) -> DependentOutcome:
        owned = self._catalog.list_owned(self._kind, account_id)
        failed_assets: List[str] = []
        for item in owned:
            failed_assets.extend(purge_assets(self._assets, item.images))
        removed = self._catalog.delete_records(self._kind, [item.id for item in owned])
        return DependentOutcome(removed=removed, failed_assets=failed_assets)


class RatingDeleter:
    name = "ratings"

    def __init__(self, aggregator: RatingAggregator):
        self._aggregator = aggregator

    def delete_for(self, account_id: str) -> DependentOutcome:
        return DependentOutcome(removed=self._aggregator.delete_for_account(account_id))


class NotificationDeleter:
    name = "notifications"

    def __init__(self, notifications: NotificationStore):
        self._notifications = notifications

    def delete_for(self, account_id: str) -> DependentOutcome:
        return DependentOutcome(removed=self._notifications.forget_user(account_id))


class LifecycleCascade:
    """Deletes accounts and owned catalog items together with their dependents.

    Dependent deleters run concurrently and every one of them is allowed to
    settle before the primary record is removed. A failing dependent is logged
    and reported, it never keeps the primary record alive.
    """

    def __init__(
        self,
        directory: AccountDirectory,
        items: Catalog,
        assets: LocalAssetStore,
        deleters: Sequence[DependentDeleter],
        max_workers: Optional[int] = None,
    ):
        self._directory = directory
        self._catalog = items
        self._assets = assets
        self._deleters = list(deleters)
        self._max_workers = max_workers or _read_max_workers()

    @property
    def deleter_names(self) -> List[str]:
        return [deleter.name for deleter in self._deleters]

    def delete_account(self, *, account_id: str, actor_user_id: str) -> DeletionReport:
        account = self._directory.find(account_id)
        is_self = actor_user_id == account_id
        if account is None:
            return self._sweep_deleted_account(account_id, actor_user_id, is_self)
        if not is_self and not self._directory.is_admin(actor_user_id):
            raise StorePermissionError("You can only delete your own account")
        if account.role == "admin" and not is_self:
            raise StorePermissionError("Cannot delete another admin user")

        removed, failed_dependents, failed_assets = self._fan_out(account_id)
        deleted = self._directory.delete(account_id)
        logger.info(
            "account %s deleted by %s (removed=%s failed=%s)",
            account_id,
            actor_user_id,
            removed,
            failed_dependents,
        )
        return DeletionReport(
            resource_type="account",
            resource_id=account_id,
            deleted=deleted,
            removed=removed,
            failed_dependents=failed_dependents,
            failed_assets=failed_assets,
        )

    def _sweep_deleted_account(self, account_id: str, actor_user_id: str, is_self: bool) -> DeletionReport:
        """Re-run the dependents of an account whose row is already gone.

        NotFound when nothing referenced the account any more.
        """
        if not is_self and not self._directory.is_admin(actor_user_id):
            raise StoreNotFoundError("Account not found")

        removed, failed_dependents, failed_assets = self._fan_out(account_id)
        if not failed_dependents and not any(removed.values()):
            raise StoreNotFoundError("Account not found")
        logger.warning(
            "swept leftovers of deleted account %s for %s (removed=%s failed=%s)",
            account_id,
            actor_user_id,
            removed,
            failed_dependents,
        )
        return DeletionReport(
            resource_type="account",
            resource_id=account_id,
            deleted=False,
            removed=removed,
            failed_dependents=failed_dependents,
            failed_assets=failed_assets,
        )

    def _fan_out(self, account_id: str) -> tuple[Dict[str, int], List[str], List[str]]:
        removed: Dict[str, int] = {}
        failed_dependents: List[str] = []
        failed_assets: List[str] = []
        if not self._deleters:
            return removed, failed_dependents, failed_assets

        workers = min(self._max_workers, len(self._deleters))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="cascade") as pool:
            futures = {pool.submit(deleter.delete_for, account_id): deleter for deleter in self._deleters}
            wait(futures)

        for future, deleter in futures.items():
            error = future.exception()
            if error is not None:
                logger.error(
                    "Dependent deleter %s failed for account %s",
                    deleter.name,
                    account_id,
                    exc_info=error,
                )
                failed_dependents.append(deleter.name)
                continue
            outcome = future.result()
            removed[deleter.name] = outcome.removed
            failed_assets.extend(outcome.failed_assets)
        return removed, sorted(failed_dependents), failed_assets

    def _delete_catalog_item(self, kind: str, item_id: str, actor_user_id: str) -> DeletionReport:
        item = self._catalog.get(kind, item_id)
        if item.seller_id != actor_user_id and not self._directory.is_admin(actor_user_id):
            raise StorePermissionError(f"You can only delete your own {kind}s")

        failed_assets = purge_assets(self._assets, item.images)
        removed = self._catalog.delete_records(kind, [item.id])
        return DeletionReport(
            resource_type=kind,  # type: ignore[arg-type]
            resource_id=item_id,
            deleted=removed > 0,
            removed={"assets": len(item.images) - len(failed_assets)},
            failed_assets=failed_assets,
        )

    def delete_listing(self, *, listing_id: str, actor_user_id: str) -> DeletionReport:
        return self._delete_catalog_item("listing", listing_id, actor_user_id)

    def delete_product(self, *, product_id: str, actor_user_id: str) -> DeletionReport:
        return self._delete_catalog_item("product", product_id, actor_user_id)


def default_deleters(
    items: Catalog,
    assets: LocalAssetStore,
    aggregator: RatingAggregator,
    notifications: NotificationStore,
) -> List[DependentDeleter]:
    return [
        OwnedCatalogDeleter("listings", "listing", items, assets),
        OwnedCatalogDeleter("products", "product", items, assets),
        RatingDeleter(aggregator),
        NotificationDeleter(notifications),
    ]


lifecycle_cascade = LifecycleCascade(
    account_directory,
    catalog,
    asset_store,
    default_deleters(catalog, asset_store, rating_aggregator, notification_store),
)
