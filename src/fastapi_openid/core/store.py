"""Association and nonce store selection.

The consumer library keeps associations and nonces in an ``OpenIDStore``.
Any implementation can be handed to the middleware directly; this module
only picks a default from the configuration.
"""

import logging

from openid.store.filestore import FileOpenIDStore
from openid.store.interface import OpenIDStore
from openid.store.memstore import MemoryStore

from fastapi_openid.config import OpenIDSettings

logger = logging.getLogger(__name__)


def create_store(settings: OpenIDSettings) -> OpenIDStore:
    """Create the association store described by the settings.

    A ``store_path`` selects the file store, which survives restarts and
    can be shared by processes on the same host. Without one, an
    in-memory store is returned. It is lost on restart and is not shared
    between worker processes, so handshakes started in one worker fail
    to verify in another.

    Args:
        settings: Middleware settings.

    Returns:
        A store implementing ``openid.store.interface.OpenIDStore``.
    """
    if settings.store_path is not None:
        settings.store_path.mkdir(parents=True, exist_ok=True)
        logger.info(
            "Using file based OpenID store",
            extra={"store_path": str(settings.store_path)},
        )
        return FileOpenIDStore(str(settings.store_path))

    logger.warning(
        "Using in-memory OpenID store; associations are lost on restart "
        "and not shared between processes. Set OPENID_STORE_PATH for a durable store."
    )
    return MemoryStore()
