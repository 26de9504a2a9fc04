"""
Pickled model bundles.

Every artifact is a dict with at least `model` and `metadata`; engines pull
whatever else they stored at training time (feature names, factor matrices).
"""
import logging
import pickle
from pathlib import Path
from typing import Any

from ..core.errors import ModelError, ModelNotFoundError

logger = logging.getLogger(__name__)


def artifact_exists(path: str | Path | None) -> bool:
    return bool(path) and Path(path).is_file()


def save_artifact(bundle: dict, path: str | Path) -> Path:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    with p.open("wb") as f:
        pickle.dump(bundle, f)
    logger.info("Saved model artifact", extra={"context": {"path": str(p)}})
    return p


def load_artifact(path: str | Path | None) -> dict:
    """Load a bundle or raise ModelNotFoundError / ModelError."""
    if not artifact_exists(path):
        raise ModelNotFoundError(str(path) if path else None)
    p = Path(path)
    try:
        with p.open("rb") as f:
            bundle = pickle.load(f)
    except (OSError, pickle.UnpicklingError, EOFError, AttributeError, ImportError) as exc:
        raise ModelError(f"Could not read model artifact {p}: {exc}") from exc
    if not isinstance(bundle, dict) or "model" not in bundle:
        raise ModelError(f"Model artifact {p} is not a bundle with a 'model' key")
    logger.info("Loaded model artifact", extra={"context": {"path": str(p)}})
    return bundle


def safe_load(path: str | Path | None) -> dict | None:
    """Best-effort loader: None instead of raising when the bundle is missing or broken."""
    try:
        return load_artifact(path)
    except ModelNotFoundError:
        logger.warning("Model artifact missing", extra={"context": {"path": str(path)}})
    except ModelError as exc:
        logger.warning("Model artifact unusable", extra={"context": {"path": str(path), "error": exc.message}})
    return None


def bundle_metadata(bundle: dict | None) -> dict[str, Any]:
    if not bundle:
        return {}
    return dict(bundle.get("metadata") or {})
