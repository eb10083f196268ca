"""Upload session wiring store, queue, API client and uploader."""

import logging
from typing import Any

from surveycam.config import Settings
from surveycam.sync import (
    PhotoUploader,
    ProjectApiClient,
    QueueStore,
    SqliteKeyValueStore,
    UploadQueue,
)

logger = logging.getLogger(__name__)


class UploadSession:
    """Owns the upload queue and everything it needs for one process.

    Nothing is loaded at import time: the application's startup sequence
    calls initialize() (or enters the session as an async context manager),
    which opens the store and restores the persisted queue.

    Example:
        async with UploadSession(settings) as session:
            session.queue.add_photo(draft)
            await session.uploader.upload_all()
    """

    def __init__(
        self,
        config: Settings,
        client: ProjectApiClient | None = None,
    ) -> None:
        """Initialize the session.

        Args:
            config: Settings instance with all configuration
            client: Pre-built API client (defaults to one built from config)
        """
        self.config = config
        self._log = logger
        self._client = client or ProjectApiClient(
            server_url=config.server_url,
            api_token=config.api_token,
            timeout=config.request_timeout,
        )

        self._kv: SqliteKeyValueStore | None = None
        self._queue: UploadQueue | None = None
        self._uploader: PhotoUploader | None = None

    @property
    def queue(self) -> UploadQueue:
        if self._queue is None:
            raise RuntimeError("UploadSession.initialize() has not been called")
        return self._queue

    @property
    def uploader(self) -> PhotoUploader:
        if self._uploader is None:
            raise RuntimeError("UploadSession.initialize() has not been called")
        return self._uploader

    @property
    def client(self) -> ProjectApiClient:
        return self._client

    def initialize(self) -> UploadQueue:
        """Open the queue store and load the persisted queue.

        Safe to call more than once; later calls return the loaded queue.

        Returns:
            The loaded UploadQueue
        """
        if self._queue is not None:
            return self._queue

        self._kv = SqliteKeyValueStore(self.config.queue_db_path)
        store = QueueStore(self._kv, key=self.config.queue_storage_key)
        self._queue = UploadQueue(store)
        count = self._queue.load_from_storage()
        self._uploader = PhotoUploader(self._queue, self._client)

        self._log.info(
            "Upload session initialized, db=%s, entries=%d",
            self.config.queue_db_path,
            count,
        )
        return self._queue

    async def close(self) -> None:
        """Release the HTTP client and the store connection."""
        if self._uploader is not None:
            self._uploader.request_stop()
        await self._client.close()
        if self._kv is not None:
            self._kv.close()
            self._kv = None
        self._log.debug("Upload session closed")

    def get_status(self) -> dict[str, Any]:
        """Get current session status.

        Returns:
            Dictionary with queue stats and the observable upload state
        """
        queue = self.queue
        return {
            "server_url": self.config.server_url,
            "queue": queue.get_stats(),
            "current_upload_id": queue.current_upload_id,
            "is_uploading": queue.is_uploading,
            "progress": queue.progress,
            "data_dir": str(self.config.data_path),
        }

    async def __aenter__(self) -> "UploadSession":
        self.initialize()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        await self.close()
