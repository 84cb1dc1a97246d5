"""
Shared Firestore async client for DATA_SOURCE=firebase and ITEMS_SOURCE=firestore.

Initializes the default Firebase app once (service account file when given,
application default credentials otherwise) and hands out its AsyncClient.
"""

import json
import logging
from pathlib import Path
from typing import Optional, Union

import firebase_admin
from firebase_admin import credentials, firestore_async

logger = logging.getLogger(__name__)


def _project_id_from_credentials_file(credentials_path: Union[Path, str]) -> Optional[str]:
    """Read project_id from a Google service account JSON file if present."""
    path = Path(credentials_path)
    if not path.is_file():
        return None
    try:
        with open(path) as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        logger.warning("[firestore] CREDENTIALS_UNREADABLE path=%s error=%s", path, e)
        return None
    return data.get("project_id") or data.get("projectId")


def get_async_client(
    project_id: Optional[str] = None,
    credentials_path: Optional[Union[Path, str]] = None,
):
    """Return a google.cloud.firestore.AsyncClient bound to the default Firebase app."""
    if not firebase_admin._apps:
        project = project_id
        if credentials_path:
            resolved = str(Path(credentials_path).resolve())
            project = project or _project_id_from_credentials_file(resolved)
            cred = credentials.Certificate(resolved)
            firebase_admin.initialize_app(cred, {"projectId": project} if project else None)
        else:
            firebase_admin.initialize_app(options={"projectId": project} if project else None)
        logger.info("[firestore] APP_INITIALIZED project=%s", project or "inferred")
    return firestore_async.client()
