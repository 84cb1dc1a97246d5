"""
Recommender service layer.

Configured backends (in-memory, Firestore, Pinecone, Qdrant) and the services
that serve, regenerate and update recommendations. Batch entry point:
python -m server.scripts.generate_recommendations
"""

from .config import ServerConfig, get_config, reload_config
from .state import AppState, get_state, reset_state

__all__ = [
    "AppState",
    "ServerConfig",
    "get_config",
    "get_state",
    "reload_config",
    "reset_state",
]
