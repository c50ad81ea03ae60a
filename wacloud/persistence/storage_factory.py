"""
Message storage selector.

Picks the IMessageStorage backend named by StorageConfig.
"""

from wacloud.core.config.models import StorageConfig
from wacloud.core.logging.logger import get_logger
from wacloud.domain.interfaces.message_storage import IMessageStorage

logger = get_logger(__name__)


def create_message_storage(config: StorageConfig | None = None) -> IMessageStorage:
    """
    Create a message storage backend from configuration.

    Args:
        config: Storage configuration (defaults to in-memory)

    Returns:
        An IMessageStorage instance

    Raises:
        ValueError: If the configuration is incomplete or the backend unknown
        TypeError: If a custom storage does not implement IMessageStorage
    """
    config = config or StorageConfig()

    if config.custom_storage is not None:
        if not isinstance(config.custom_storage, IMessageStorage):
            raise TypeError(
                f"custom_storage must implement IMessageStorage, "
                f"got {type(config.custom_storage).__name__}"
            )
        return config.custom_storage

    from .memory.message_storage import MemoryMessageStorage

    if config.backend == "custom":
        raise ValueError("backend='custom' requires custom_storage")

    if config.backend == "file":
        if not config.file_path:
            raise ValueError("File path is required for file storage")
        logger.warning(
            f"File storage is not available; using in-memory storage "
            f"instead of {config.file_path}"
        )
        return MemoryMessageStorage(config.max_messages_per_conversation)

    if config.backend == "memory":
        return MemoryMessageStorage(config.max_messages_per_conversation)

    raise ValueError(
        f"Unsupported storage backend: {config.backend}. "
        f"Supported backends: 'memory', 'file', 'custom'"
    )
