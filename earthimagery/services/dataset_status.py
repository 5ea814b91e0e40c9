"""
Dataset status read model.

Datasets are enabled, disabled and discovered by external scripts that keep
their state in two JSON files under the config directory:

- datasets-status.json: enabled_datasets / disabled_datasets / discovered_datasets
- download-tracking.json: per-dataset download counters under "tracking"

This module only reads them, to decide which datasets the UI offers. Playlist
synthesis does not gate on any of this.
"""
import json
import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

logger = logging.getLogger(__name__)

CONFIG_FILE = "datasets-status.json"
TRACKING_FILE = "download-tracking.json"


class DatasetState:
    AVAILABLE = "available"
    DOWNLOADED = "downloaded"
    PROCESSING = "processing"
    ERROR = "error"
    DISCOVERED = "discovered"


@dataclass
class DatasetStatus:
    key: str
    satellite: str
    sector: str
    product: str
    resolution: str
    enabled: bool
    auto_download: bool
    status: str
    total_images: int = 0
    last_download: Optional[str] = None
    description: Optional[str] = None
    discovered_date: Optional[str] = None
    disabled_reason: Optional[str] = None

    def to_dict(self) -> dict:
        return {k: v for k, v in asdict(self).items() if v is not None}


def _read_json(path: Path, default: dict) -> dict:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        logger.warning(f"[Datasets] {path.name} not found")
    except (OSError, ValueError) as e:
        logger.warning(f"[Datasets] Could not read {path}: {e}")
    return default


def _description(config: dict) -> str:
    return config.get("description") or (
        f"{config.get('satellite', '')} {config.get('sector', '')} "
        f"{config.get('product', '')} {config.get('resolution', '')}"
    )


def _base(key: str, config: dict) -> dict:
    return {
        "key": key,
        "satellite": config.get("satellite", ""),
        "sector": config.get("sector", ""),
        "product": config.get("product", ""),
        "resolution": config.get("resolution", ""),
        "auto_download": bool(config.get("auto_download", False)),
    }


def load_dataset_statuses(config_dir: Path) -> List[DatasetStatus]:
    """
    Build the list of known datasets and their state.

    Missing files are tolerated. When no dataset configuration exists at all,
    the tracking file alone is used.
    """
    config_dir = Path(config_dir)
    config_data = _read_json(config_dir / CONFIG_FILE, {})
    tracking = _read_json(config_dir / TRACKING_FILE, {"tracking": {}}).get("tracking") or {}

    datasets: List[DatasetStatus] = []

    for key, config in (config_data.get("enabled_datasets") or {}).items():
        info = tracking.get(key, {})
        downloaded = info.get("total_images_downloaded", 0) or 0
        datasets.append(DatasetStatus(
            **_base(key, config),
            enabled=True,
            status=DatasetState.DOWNLOADED if downloaded > 0 else DatasetState.AVAILABLE,
            total_images=downloaded,
            last_download=info.get("last_download") or config.get("re_enabled_date"),
            description=_description(config),
        ))

    for key, config in (config_data.get("disabled_datasets") or {}).items():
        info = tracking.get(key, {})
        downloaded = info.get("total_images_downloaded", 0) or 0
        reason = config.get("disabled_reason")
        # 'error' only when the dataset was disabled for being inactive
        if reason and "inactive" in reason:
            status = DatasetState.ERROR
        elif downloaded > 0:
            status = DatasetState.DOWNLOADED
        else:
            status = DatasetState.AVAILABLE
        datasets.append(DatasetStatus(
            **_base(key, config),
            enabled=False,
            status=status,
            total_images=downloaded,
            last_download=info.get("last_download"),
            description=_description(config),
            disabled_reason=reason,
        ))

    for key, config in (config_data.get("discovered_datasets") or {}).items():
        datasets.append(DatasetStatus(
            **_base(key, config),
            enabled=False,
            status=DatasetState.DISCOVERED,
            description=_description(config),
            discovered_date=config.get("discovered_date"),
        ))

    if not datasets:
        for key, info in tracking.items():
            config = info.get("dataset_info") or {}
            downloaded = info.get("total_images_downloaded", 0) or 0
            datasets.append(DatasetStatus(
                **_base(key, config),
                enabled=bool(config.get("enabled", False)),
                status=DatasetState.DOWNLOADED if downloaded > 0 else DatasetState.AVAILABLE,
                total_images=downloaded,
                last_download=info.get("last_download"),
            ))

    return datasets


def get_status_report(config_dir: Path) -> dict:
    """Status payload for the datasets endpoint."""
    datasets = load_dataset_statuses(config_dir)
    return {
        "success": True,
        "datasets": [d.to_dict() for d in datasets],
        "total_count": len(datasets),
        "enabled_count": sum(1 for d in datasets if d.enabled),
        "discovered_count": sum(1 for d in datasets if d.status == DatasetState.DISCOVERED),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
