import json
import logging
import os
from typing import Optional

from firebase_admin import credentials, initialize_app, _apps  # type: ignore

from medibot.core.config import settings

logger = logging.getLogger(__name__)


def ensure_firebase_initialized() -> bool:
    """Initialize the default Firebase app once. Returns True when an app exists.

    Credential sources, first hit wins:
      - FIREBASE_CREDENTIALS_JSON (inline JSON or a file path)
      - GOOGLE_APPLICATION_CREDENTIALS_JSON (inline JSON)
      - GOOGLE_APPLICATION_CREDENTIALS (file path)
      - FIREBASE_PROJECT_ID alone (application default credentials)
    """
    if _apps:
        return True

    proj = settings.FIREBASE_PROJECT_ID
    creds_json: Optional[str] = (
        settings.FIREBASE_CREDENTIALS_JSON
        or os.getenv("GOOGLE_APPLICATION_CREDENTIALS_JSON")
        or os.getenv("GOOGLE_APPLICATION_CREDENTIALS")
    )
    options = {"projectId": proj} if proj else None

    logger.info(f"🔍 [Firebase] Initializing | project_id={proj} credentials_set={bool(creds_json)}")

    try:
        if creds_json and creds_json.strip().startswith("{"):
            initialize_app(credentials.Certificate(json.loads(creds_json)), options=options)
            logger.info("✅ [Firebase] App initialized (inline JSON)")
        elif creds_json and os.path.exists(creds_json):
            initialize_app(credentials.Certificate(creds_json), options=options)
            logger.info("✅ [Firebase] App initialized (file)")
        elif proj:
            initialize_app(options=options)
            logger.info("✅ [Firebase] App initialized (projectId only)")
        else:
            logger.warning("⚠️  [Firebase] No credentials or project configured - Firebase disabled")
            return False
    except (ValueError, OSError) as e:
        logger.error(f"❌ [Firebase] Failed to initialize: {e!r}")
        return False

    return bool(_apps)
