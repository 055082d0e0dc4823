# cam_explainer/utils/labels.py

# Import HTTP client for label download
from typing import List

import requests

from core.config import Config
from utils.logger import get_logger

logger = get_logger(__name__)


def load_labels(url: str = Config.LABELS_URL, timeout: float = 10.0) -> List[str]:
    """
    Download a newline-separated list of class names.
    Returns an empty list if the download fails, so callers fall back to indices.
    """
    try:
        resp = requests.get(url, timeout=timeout)
        resp.raise_for_status()
    except requests.RequestException as e:
        logger.warning("Could not download labels from %s: %s", url, e)
        return []
    labels = [line.strip() for line in resp.text.splitlines() if line.strip()]
    logger.info("Downloaded %d class labels", len(labels))
    return labels


def label_for(labels: List[str], idx: int) -> str:
    return labels[idx] if 0 <= idx < len(labels) else f"class_{idx}"
