from __future__ import annotations
import logging
import httpx
from typing import Any, Dict, List, Optional, Sequence
from .settings import settings

logger = logging.getLogger(__name__)


class GeminiUnavailable(RuntimeError):
	"""Every model in the fallback list failed to produce text."""

	def __init__(self, errors: Dict[str, str]) -> None:
		self.errors = errors
		summary = "; ".join(f"{model}: {err}" for model, err in errors.items()) or "no models configured"
		super().__init__(f"All Gemini models failed ({summary})")


class GeminiClient:
	def __init__(
		self,
		api_key: Optional[str] = None,
		*,
		models: Optional[Sequence[str]] = None,
		base_url: Optional[str] = None,
		transport: Optional[httpx.AsyncBaseTransport] = None,
	) -> None:
		self.api_key = api_key or settings.gemini_api_key
		if not self.api_key:
			raise ValueError("GEMINI_API_KEY is not configured")
		self.models: List[str] = list(models or settings.gemini_fallback_models)
		self.base_url = (base_url or settings.gemini_base_url).rstrip("/")
		self._client = httpx.AsyncClient(timeout=settings.gemini_timeout_seconds, transport=transport)

	def _endpoint(self, model: str) -> str:
		return f"{self.base_url}/{model}:generateContent"

	async def generate(
		self,
		prompt: str,
		*,
		temperature: Optional[float] = None,
		max_output_tokens: Optional[int] = None,
	) -> str:
		payload: Dict[str, Any] = {"contents": [{"parts": [{"text": prompt}]}]}
		return await self._post_payload(payload, temperature=temperature, max_output_tokens=max_output_tokens)

	async def generate_multimodal(
		self,
		parts: List[Dict[str, Any]],
		*,
		role: str = "user",
		temperature: Optional[float] = None,
		max_output_tokens: Optional[int] = None,
		response_mime_type: Optional[str] = None,
	) -> str:
		payload: Dict[str, Any] = {"contents": [{"role": role, "parts": parts}]}
		return await self._post_payload(
			payload,
			temperature=temperature,
			max_output_tokens=max_output_tokens,
			response_mime_type=response_mime_type,
		)

	async def _post_payload(
		self,
		payload: Dict[str, Any],
		*,
		temperature: Optional[float] = None,
		max_output_tokens: Optional[int] = None,
		response_mime_type: Optional[str] = None,
	) -> str:
		generation_config: Dict[str, Any] = {}
		if temperature is not None:
			generation_config["temperature"] = temperature
		if max_output_tokens is not None:
			generation_config["maxOutputTokens"] = max_output_tokens
		if response_mime_type is not None:
			generation_config["responseMimeType"] = response_mime_type
		if generation_config:
			payload = {**payload, "generationConfig": generation_config}
		params = {"key": self.api_key}
		errors: Dict[str, str] = {}
		for model in self.models:
			logger.info("Trying Gemini model: %s", model)
			try:
				r = await self._client.post(self._endpoint(model), params=params, json=payload)
				r.raise_for_status()
			except httpx.HTTPStatusError as http_err:
				# 429 and 5xx alike move on to the next model
				logger.error("Gemini %s failed: %s %s", model, http_err.response.status_code, http_err.response.text)
				errors[model] = f"HTTP {http_err.response.status_code}"
				continue
			except httpx.RequestError as net_err:
				logger.error("Error with %s: %s", model, net_err)
				errors[model] = str(net_err) or net_err.__class__.__name__
				continue
			text = _first_candidate_text(r)
			if text:
				logger.info("Success with %s", model)
				return text
			errors[model] = "empty response"
		raise GeminiUnavailable(errors)

	async def aclose(self) -> None:
		await self._client.aclose()


def _first_candidate_text(response: httpx.Response) -> Optional[str]:
	try:
		data = response.json()
		return data["candidates"][0]["content"]["parts"][0]["text"]
	except (ValueError, KeyError, IndexError, TypeError):
		return None
