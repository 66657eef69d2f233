"""Timed HTTP request wrapper built on httpx."""
from __future__ import annotations

import asyncio
import logging
from time import perf_counter
from typing import Any, Dict, Mapping, Optional

import httpx

from vitalstream.config import BackendConfig
from vitalstream.errors import BackendError, BackendNetworkError, BackendTimeoutError
from vitalstream.metrics import EventLog

logger = logging.getLogger(__name__)

JSON_HEADERS: Mapping[str, str] = {"Content-Type": "application/json", "Accept": "application/json"}


class RequestTransport:
	"""Issue single HTTP requests with uniform JSON headers and a hard timeout.

	The timeout is enforced with :func:`asyncio.wait_for`: when it expires the
	request task is cancelled, which aborts the in-flight exchange, and
	:class:`BackendTimeoutError` is raised. The owned ``httpx.AsyncClient`` is
	created by :meth:`open` and released by :meth:`close`.
	"""

	def __init__(
		self,
		config: BackendConfig,
		*,
		transport: Optional[httpx.AsyncBaseTransport] = None,
		events: Optional[EventLog] = None,
	) -> None:
		self.config = config
		self.events = events
		self._transport = transport
		self._client: Optional[httpx.AsyncClient] = None

	# ------------------------------------------------------------------
	# Lifecycle helpers
	# ------------------------------------------------------------------
	@property
	def is_open(self) -> bool:
		return self._client is not None and not self._client.is_closed

	async def open(self) -> None:
		if self.is_open:
			return
		self._client = httpx.AsyncClient(
			base_url=self.config.base_url,
			headers=dict(JSON_HEADERS),
			timeout=httpx.Timeout(self.config.timeout),
			transport=self._transport,
		)

	async def close(self) -> None:
		if self._client is None:
			return
		try:
			await self._client.aclose()
		finally:
			self._client = None

	async def __aenter__(self) -> "RequestTransport":
		await self.open()
		return self

	async def __aexit__(self, exc_type, exc, tb) -> None:  # type: ignore[override]
		await self.close()

	# ------------------------------------------------------------------
	# Requests
	# ------------------------------------------------------------------
	async def request(
		self,
		method: str,
		url: str,
		*,
		json: Any = None,
		headers: Optional[Mapping[str, str]] = None,
		params: Optional[Mapping[str, Any]] = None,
	) -> httpx.Response:
		client = self._require_client()
		merged_headers: Dict[str, str] = dict(JSON_HEADERS)
		if headers:
			merged_headers.update(headers)
		timeout = self.config.timeout

		started = perf_counter()
		try:
			response = await self._send(client, method, url, json, merged_headers, params, timeout)
		except BackendError as exc:
			if self.events is not None:
				self.events.http_request(method, url, perf_counter() - started, error=exc)
			raise
		if self.events is not None:
			self.events.http_request(method, url, perf_counter() - started, status_code=response.status_code)
		return response

	async def _send(
		self,
		client: httpx.AsyncClient,
		method: str,
		url: str,
		body: Any,
		headers: Mapping[str, str],
		params: Optional[Mapping[str, Any]],
		timeout: float,
	) -> httpx.Response:
		try:
			return await asyncio.wait_for(
				client.request(method, url, json=body, headers=headers, params=params),
				timeout=timeout,
			)
		except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
			logger.debug("%s %s timed out after %.1fs", method, url, timeout)
			raise BackendTimeoutError(url, timeout) from exc
		except httpx.TransportError as exc:
			logger.debug("%s %s failed: %s", method, url, exc)
			raise BackendNetworkError(f"{method} {url} failed: {exc}") from exc

	def _require_client(self) -> httpx.AsyncClient:
		client = self._client
		if client is None or client.is_closed:
			raise RuntimeError("RequestTransport is not open")
		return client


__all__ = ["RequestTransport", "JSON_HEADERS"]
