import os
import sys
import tempfile
from dataclasses import dataclass
from datetime import timezone
from typing import Callable
from uuid import uuid4

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

# The app wires its singletons at import time, so point them at a scratch dir first.
_SCRATCH_DIR = tempfile.mkdtemp(prefix="marketplace-tests-")
os.environ.setdefault("MARKETPLACE_DB_PATH", os.path.join(_SCRATCH_DIR, "marketplace.sqlite3"))
os.environ.setdefault("ASSET_STORE_DIR", os.path.join(_SCRATCH_DIR, "assets"))
os.environ.setdefault("AUTH_REQUIRED", "false")

from app.models import Account  # noqa: E402
from app.services.account_directory import AccountDirectory  # noqa: E402
from app.services.appointments import AppointmentWorkflow  # noqa: E402
from app.services.asset_store import LocalAssetStore  # noqa: E402
from app.services.cascade import LifecycleCascade, default_deleters  # noqa: E402
from app.services.catalog import Catalog  # noqa: E402
from app.services.database import Database  # noqa: E402
from app.services.notification_store import NotificationStore  # noqa: E402
from app.services.rating_aggregator import RatingAggregator  # noqa: E402


@dataclass
class Services:
    db: Database
    directory: AccountDirectory
    notifications: NotificationStore
    assets: LocalAssetStore
    aggregator: RatingAggregator
    catalog: Catalog
    cascade: LifecycleCascade
    appointments: AppointmentWorkflow


@pytest.fixture
def services(tmp_path) -> Services:
    db = Database(db_path=str(tmp_path / "marketplace.sqlite3"))
    directory = AccountDirectory(db)
    notifications = NotificationStore()
    assets = LocalAssetStore(root=str(tmp_path / "assets"))
    aggregator = RatingAggregator(db, directory, notifications)
    items = Catalog(db, directory)
    cascade = LifecycleCascade(
        directory,
        items,
        assets,
        default_deleters(items, assets, aggregator, notifications),
        max_workers=4,
    )
    return Services(
        db=db,
        directory=directory,
        notifications=notifications,
        assets=assets,
        aggregator=aggregator,
        catalog=items,
        cascade=cascade,
        appointments=AppointmentWorkflow(db, directory, notifications, tz=timezone.utc),
    )


@pytest.fixture
def make_account(services) -> Callable[..., Account]:
    def _make(role: str, name: str = "") -> Account:
        suffix = uuid4().hex[:8]
        return services.directory.create(
            name=name or f"{role.title()} {suffix}",
            email=f"{role}_{suffix}@example.com",
            role=role,
        )

    return _make
