import logging
import os
import re
from pathlib import Path

logger = logging.getLogger(__name__)

ASSET_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]{0,127}$")


class AssetStoreError(RuntimeError):
    pass


class LocalAssetStore:
    """Opaque blob storage keyed by asset id, backed by a local directory.

    Stands in for the hosted image store; upload handling lives outside the core.
    """

    def __init__(self, root: str, public_base_url: str = "/assets"):
        self.root = Path(root)
        self.public_base_url = public_base_url.rstrip("/")

    def _path_for(self, asset_id: str) -> Path:
        if not ASSET_ID_PATTERN.match(asset_id or ""):
            raise AssetStoreError(f"Invalid asset id: {asset_id!r}")
        return self.root / asset_id

    def store(self, asset_id: str, data: bytes) -> str:
        path = self._path_for(asset_id)
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as exc:
            raise AssetStoreError(f"Failed to store asset {asset_id}") from exc
        return f"{self.public_base_url}/{asset_id}"

    def exists(self, asset_id: str) -> bool:
        return self._path_for(asset_id).is_file()

    def delete(self, asset_id: str) -> bool:
        """Delete a blob; returns False when it was already gone."""
        path = self._path_for(asset_id)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise AssetStoreError(f"Failed to delete asset {asset_id}") from exc
        logger.debug("asset %s deleted", asset_id)
        return True


default_asset_dir = str(Path(__file__).resolve().parents[2] / "data" / "assets")
asset_store = LocalAssetStore(
    root=os.getenv("ASSET_STORE_DIR", default_asset_dir),
    public_base_url=os.getenv("ASSET_PUBLIC_BASE_URL", "/assets"),
)
