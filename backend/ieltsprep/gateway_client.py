from __future__ import annotations
import logging
import httpx
from typing import Any, Dict, List, Optional
from .settings import settings

logger = logging.getLogger(__name__)


class GatewayError(RuntimeError):
	def __init__(self, status_code: int, body: str = "") -> None:
		self.status_code = status_code
		self.body = body
		super().__init__(f"AI gateway error: {status_code}")


class GatewayClient:
	"""OpenAI-compatible chat completions client for the hosted AI gateway."""

	def __init__(
		self,
		api_key: Optional[str] = None,
		*,
		base_url: Optional[str] = None,
		model: Optional[str] = None,
		transport: Optional[httpx.AsyncBaseTransport] = None,
	) -> None:
		self.api_key = api_key or settings.lovable_api_key
		if not self.api_key:
			raise ValueError("LOVABLE_API_KEY is not configured")
		self.base_url = base_url or settings.ai_gateway_url
		self.model = model or settings.ai_gateway_model
		self._headers = {
			"Authorization": f"Bearer {self.api_key}",
			"Content-Type": "application/json",
		}
		self._client = httpx.AsyncClient(timeout=settings.ai_gateway_timeout_seconds, transport=transport)

	async def chat(self, messages: List[Dict[str, str]]) -> str:
		payload: Dict[str, Any] = {"model": self.model, "messages": messages}
		r = await self._client.post(self.base_url, headers=self._headers, json=payload)
		if r.status_code >= 400:
			logger.error("AI gateway error: %s %s", r.status_code, r.text)
			raise GatewayError(r.status_code, r.text)
		try:
			data = r.json()
			return data["choices"][0]["message"]["content"] or ""
		except (ValueError, KeyError, IndexError, TypeError):
			return ""

	async def aclose(self) -> None:
		await self._client.aclose()
