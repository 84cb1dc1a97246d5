"""
Recommender server configuration.

Backend selection (user data, vector index, item catalog) and runtime overrides
come from environment variables, optionally via a repo-root .env file
(python-dotenv). Recommender parameters are read from RECOMMENDER_CONFIG_PATH.
"""

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from recommender.models import RecommenderConfig

# Single .env at the repo root for the batch job, scripts and local runs
root_env = Path(__file__).resolve().parent.parent / ".env"
if root_env.exists():
    load_dotenv(root_env)

DATA_SOURCES = ("memory", "firebase")
VECTOR_BACKENDS = ("memory", "pinecone", "qdrant")
ITEMS_SOURCES = ("json", "firestore", "http")


def _choice(key: str, allowed: tuple, default: str) -> str:
    value = os.getenv(key, "").strip().lower()
    return value if value in allowed else default


@dataclass
class ServerConfig:
    """Server configuration."""

    # Backends
    data_source: str = "memory"
    vector_backend: str = "memory"
    items_source: str = "json"

    # Pinecone
    pinecone_api_key: Optional[str] = None
    pinecone_index_name: Optional[str] = None
    pinecone_namespace: str = ""

    # Qdrant
    qdrant_url: Optional[str] = None
    qdrant_collection: Optional[str] = None

    # Firestore: path to service account JSON and optional project id
    firebase_credentials_path: Optional[Path] = None
    firebase_project_id: Optional[str] = None

    # Item catalog
    items_json_path: Optional[Path] = None
    items_api_url: Optional[str] = None

    # Recommender parameters (JSON with generation / clustering / serving / batch groups)
    recommender_config_path: Optional[Path] = None

    # Runtime
    log_level: str = "INFO"
    search_timeout_seconds: Optional[float] = None
    batch_concurrency: Optional[int] = None
    cluster_seed: Optional[int] = None

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """Load configuration from environment variables."""
        base_dir = Path(__file__).parent.parent

        def _path_env(key: str, default: Optional[Path] = None) -> Optional[Path]:
            v = os.getenv(key)
            if not v:
                return default
            p = Path(v)
            return p if p.is_absolute() else (base_dir / p).resolve()

        def _num_env(key: str, cast):
            v = (os.getenv(key) or "").strip()
            return cast(v) if v else None

        return cls(
            data_source=_choice("DATA_SOURCE", DATA_SOURCES, "memory"),
            vector_backend=_choice("VECTOR_BACKEND", VECTOR_BACKENDS, "memory"),
            items_source=_choice("ITEMS_SOURCE", ITEMS_SOURCES, "json"),
            pinecone_api_key=os.getenv("PINECONE_API_KEY") or None,
            pinecone_index_name=os.getenv("PINECONE_INDEX_NAME") or None,
            pinecone_namespace=os.getenv("PINECONE_NAMESPACE", ""),
            qdrant_url=os.getenv("QDRANT_URL") or None,
            qdrant_collection=os.getenv("QDRANT_COLLECTION") or None,
            firebase_credentials_path=_path_env("FIREBASE_CREDENTIALS_PATH") or _path_env("GOOGLE_APPLICATION_CREDENTIALS"),
            firebase_project_id=os.getenv("FIREBASE_PROJECT_ID") or None,
            items_json_path=_path_env("ITEMS_JSON_PATH", base_dir / "data" / "items.json"),
            items_api_url=os.getenv("ITEMS_API_URL") or None,
            recommender_config_path=_path_env("RECOMMENDER_CONFIG_PATH"),
            log_level=(os.getenv("LOG_LEVEL") or "INFO").upper(),
            search_timeout_seconds=_num_env("SEARCH_TIMEOUT_SECONDS", float),
            batch_concurrency=_num_env("BATCH_CONCURRENCY", int),
            cluster_seed=_num_env("CLUSTER_SEED", int),
        )

    def validate(self) -> tuple[bool, list[str]]:
        """
        Validate the configuration.

        Returns:
            (is_valid, list_of_errors)
        """
        errors = []

        if self.vector_backend == "pinecone":
            if not self.pinecone_api_key:
                errors.append("PINECONE_API_KEY is required when VECTOR_BACKEND=pinecone")
            if not self.pinecone_index_name:
                errors.append("PINECONE_INDEX_NAME is required when VECTOR_BACKEND=pinecone")

        if self.vector_backend == "qdrant" and not self.qdrant_url:
            errors.append("QDRANT_URL is required when VECTOR_BACKEND=qdrant")

        uses_firestore = self.data_source == "firebase" or self.items_source == "firestore"
        if uses_firestore and self.firebase_credentials_path and not self.firebase_credentials_path.is_file():
            errors.append(f"Firebase credentials file not found: {self.firebase_credentials_path}")

        if self.items_source == "http" and not self.items_api_url:
            errors.append("ITEMS_API_URL is required when ITEMS_SOURCE=http")

        if self.recommender_config_path and not self.recommender_config_path.is_file():
            errors.append(f"Recommender config not found: {self.recommender_config_path}")

        if self.search_timeout_seconds is not None and self.search_timeout_seconds <= 0:
            errors.append("SEARCH_TIMEOUT_SECONDS must be positive")

        if self.batch_concurrency is not None and self.batch_concurrency < 1:
            errors.append("BATCH_CONCURRENCY must be >= 1")

        return len(errors) == 0, errors

    def load_recommender_config(self) -> RecommenderConfig:
        """
        Recommender parameters: JSON file (if configured) merged over defaults,
        then environment overrides for search timeout, batch concurrency and seed.
        """
        data: dict = {}
        if self.recommender_config_path:
            with open(self.recommender_config_path) as f:
                data = json.load(f)
        data = {k: dict(v) for k, v in data.items() if isinstance(v, dict)}
        if self.search_timeout_seconds is not None:
            data.setdefault("generation", {})["search_timeout_seconds"] = self.search_timeout_seconds
        if self.batch_concurrency is not None:
            data.setdefault("batch", {})["concurrency"] = self.batch_concurrency
        if self.cluster_seed is not None:
            data.setdefault("batch", {})["seed"] = self.cluster_seed
        return RecommenderConfig.from_dict(data)


# Global config instance
_config: Optional[ServerConfig] = None


def get_config() -> ServerConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = ServerConfig.from_env()
    return _config


def reload_config() -> ServerConfig:
    """Reload configuration from environment."""
    global _config
    _config = None
    return get_config()
