"""Adapters for the remote asset host.

`RemoteAssetHost` is the interface the workflows depend on;
`CloudinaryAssetHost` implements it on top of the Cloudinary SDK.
"""

from __future__ import annotations

import asyncio
import functools
import io
import logging
import os
from typing import Any, Callable, Dict, Optional, Protocol

import cloudinary
import cloudinary.api
import cloudinary.uploader
from cloudinary.exceptions import NotFound as CloudinaryNotFound

from models.asset_models import RemoteAsset
from models.errors import RemoteTransportError, RemoteUploadError

LOGGER = logging.getLogger(__name__)

REQUIRED_ENV_VARS = ("CLOUDINARY_CLOUD_NAME", "CLOUDINARY_API_KEY", "CLOUDINARY_API_SECRET")


class RemoteAssetHost(Protocol):
    """Port: the cloud service holding the public copy of each image."""

    async def upload(self, data: bytes, display_name: str) -> RemoteAsset: ...

    async def exists(self, remote_asset_id: str) -> bool: ...

    async def delete(self, remote_asset_id: str) -> None: ...


class CloudinaryAssetHost:
    """Cloudinary-backed `RemoteAssetHost`.

    The SDK is synchronous, so every call runs in a worker thread. The SDK is
    given the timeout itself so the thread ends at the bound; `wait_for` only
    backstops an SDK call that overruns it. Existence checks hold a slot until
    their thread has returned, so a degraded host never sees more than
    `max_in_flight` checks at once even after callers have given up waiting.

    Args:
        cloud_name: Cloudinary cloud name.
        api_key: API key.
        api_secret: API secret.
        folder: Folder new uploads are placed in.
        request_timeout: Seconds allowed for existence checks and deletes.
        upload_timeout: Seconds allowed for an upload.
        max_in_flight: Existence checks allowed to run in worker threads at once.
        timeout_grace: Extra seconds the backstop waits beyond the SDK timeout.
    """

    def __init__(
        self,
        cloud_name: str,
        api_key: str,
        api_secret: str,
        folder: str = "cloudapp",
        request_timeout: float = 5.0,
        upload_timeout: float = 60.0,
        max_in_flight: int = 8,
        timeout_grace: float = 1.0,
    ) -> None:
        cloudinary.config(cloud_name=cloud_name, api_key=api_key, api_secret=api_secret, secure=True)
        self.folder = folder
        self.request_timeout = request_timeout
        self.upload_timeout = upload_timeout
        self.timeout_grace = timeout_grace
        self._check_slots = asyncio.Semaphore(max_in_flight)

    @classmethod
    def from_env(cls, **kwargs: Any) -> "CloudinaryAssetHost":
        """Build a client from the CLOUDINARY_* environment variables.

        Raises:
            RuntimeError: If any credential is missing.
        """
        missing = [key for key in REQUIRED_ENV_VARS if not os.getenv(key)]
        if missing:
            raise RuntimeError(f"Missing required environment variable(s): {', '.join(missing)}")
        return cls(
            cloud_name=os.environ["CLOUDINARY_CLOUD_NAME"],
            api_key=os.environ["CLOUDINARY_API_KEY"],
            api_secret=os.environ["CLOUDINARY_API_SECRET"],
            **kwargs,
        )

    async def _start(
        self,
        fn: Callable[..., Any],
        *args: Any,
        timeout: float,
        slots: Optional[asyncio.Semaphore] = None,
        **options: Any,
    ) -> "asyncio.Future[Any]":
        """Submit a blocking SDK call to a worker thread and return its future.

        A slot taken from `slots` is released when the thread returns, not
        when the caller stops waiting.
        """
        if slots is not None:
            await slots.acquire()
        loop = asyncio.get_running_loop()
        future = loop.run_in_executor(None, functools.partial(fn, *args, timeout=timeout, **options))
        future.add_done_callback(functools.partial(_finish_call, slots))
        return future

    async def _wait(self, future: "asyncio.Future[Any]", timeout: float) -> Any:
        # Shielded so a cancelled or timed-out caller leaves the thread's
        # future (and the slot it holds) to finish on its own.
        return await asyncio.wait_for(asyncio.shield(future), timeout=timeout + self.timeout_grace)

    async def upload(self, data: bytes, display_name: str) -> RemoteAsset:
        """Upload `data` and return the identifiers Cloudinary assigned.

        Raises:
            RemoteUploadError: On any transport or service-side failure.
        """
        future = await self._start(
            cloudinary.uploader.upload,
            io.BytesIO(data),
            timeout=self.upload_timeout,
            folder=self.folder,
            use_filename=True,
            filename_override=display_name,
            resource_type="image",
        )
        try:
            result: Dict[str, Any] = await self._wait(future, self.upload_timeout)
        except asyncio.TimeoutError as exc:
            # The thread may still succeed; whatever it creates must not outlive us.
            future.add_done_callback(functools.partial(_discard_late_upload, self.request_timeout))
            raise RemoteUploadError(f"Upload of {display_name!r} timed out") from exc
        except Exception as exc:  # pylint: disable=broad-exception-caught
            LOGGER.error("Cloudinary upload of %s failed: %s", display_name, exc)
            raise RemoteUploadError(f"Upload of {display_name!r} failed: {exc}") from exc

        public_id = result.get("public_id")
        url = result.get("secure_url") or result.get("url")
        if not public_id or not url:
            raise RemoteUploadError(f"Cloudinary returned an incomplete upload result for {display_name!r}")
        LOGGER.info("Uploaded %s to Cloudinary as %s", display_name, public_id)
        return RemoteAsset(remote_asset_id=public_id, remote_url=url)

    async def exists(self, remote_asset_id: str) -> bool:
        """Return True if the asset is present, False on a definite "not found".

        Raises:
            RemoteTransportError: If the check could not be completed.
        """
        future = await self._start(
            cloudinary.api.resource,
            remote_asset_id,
            timeout=self.request_timeout,
            slots=self._check_slots,
        )
        try:
            await self._wait(future, self.request_timeout)
        except CloudinaryNotFound:
            return False
        except asyncio.TimeoutError as exc:
            raise RemoteTransportError(f"Existence check for {remote_asset_id} timed out") from exc
        except Exception as exc:  # pylint: disable=broad-exception-caught
            raise RemoteTransportError(f"Existence check for {remote_asset_id} failed: {exc}") from exc
        return True

    async def delete(self, remote_asset_id: str) -> None:
        """Delete the asset; an asset that is already gone counts as deleted.

        Raises:
            RemoteTransportError: If the host could not be reached or refused.
        """
        future = await self._start(cloudinary.uploader.destroy, remote_asset_id, timeout=self.request_timeout)
        try:
            result: Dict[str, Any] = await self._wait(future, self.request_timeout)
        except asyncio.TimeoutError as exc:
            raise RemoteTransportError(f"Delete of {remote_asset_id} timed out") from exc
        except Exception as exc:  # pylint: disable=broad-exception-caught
            raise RemoteTransportError(f"Delete of {remote_asset_id} failed: {exc}") from exc

        outcome = (result or {}).get("result")
        if outcome not in ("ok", "not found"):
            raise RemoteTransportError(f"Delete of {remote_asset_id} returned {outcome!r}")


def _finish_call(slots: Optional[asyncio.Semaphore], future: "asyncio.Future[Any]") -> None:
    if slots is not None:
        slots.release()
    # Retrieve the outcome so abandoned calls do not log "exception never retrieved".
    if not future.cancelled() and future.exception() is not None:
        LOGGER.debug("Cloudinary call finished with %r", future.exception())


def _discard_late_upload(timeout: float, future: "asyncio.Future[Any]") -> None:
    if future.cancelled() or future.exception() is not None:
        return
    public_id = (future.result() or {}).get("public_id")
    if not public_id:
        return
    LOGGER.warning("Upload finished after timing out; deleting orphaned asset %s", public_id)
    loop = asyncio.get_running_loop()
    cleanup = loop.run_in_executor(None, functools.partial(cloudinary.uploader.destroy, public_id, timeout=timeout))
    cleanup.add_done_callback(functools.partial(_finish_call, None))
