import logging
from typing import Any, Dict, Optional, Type

import httpx

from resume_coach.cover_letter.errors import CoverLetterError, CreditLedgerError, FormStoreError, GenerationError
from resume_coach.cover_letter.form_state import FormData

logger = logging.getLogger(__name__)

FORMS_PATH = "/api/cover-letter-forms"


def _error_detail(response: httpx.Response) -> str:
    """Best-effort message from a FastAPI error body ({detail}) or an AI error body ({error, details})."""
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        detail = body.get("details") or body.get("detail") or body.get("error")
        if detail:
            return str(detail)
    return f"HTTP {response.status_code}"


def _json_object(response: httpx.Response, error_cls: Type[CoverLetterError], message: str) -> Dict[str, Any]:
    """The decoded body of a successful response, which must be a JSON object."""
    try:
        body = response.json()
    except ValueError:
        raise error_cls(message, f"Unexpected response body (HTTP {response.status_code})")
    if not isinstance(body, dict):
        raise error_cls(message, "Unexpected response shape")
    return body


class HttpGenerationClient:
    """Calls the AI endpoint of the service."""

    def __init__(self, client: httpx.AsyncClient):
        self.client = client

    async def generate(self, prompt: Dict[str, Any], prompt_type: str) -> str:
        try:
            response = await self.client.post("/api/ai", json={"prompt": prompt, "type": prompt_type})
        except httpx.HTTPError as e:
            logger.error(f"AI request failed: {e}")
            raise GenerationError("Failed to process AI request", str(e))

        if response.is_error:
            raise GenerationError("Failed to process AI request", _error_detail(response))

        body = _json_object(response, GenerationError, "Failed to process AI request")
        result = body.get("result")
        if not isinstance(result, str):
            raise GenerationError("Failed to process AI request", "No result returned")
        return result


class HttpCreditLedger:
    """Credit balance held by the service; spends are atomic on the server."""

    def __init__(self, client: httpx.AsyncClient):
        self.client = client

    async def _request(self, method: str, url: str, **kwargs) -> Dict[str, Any]:
        try:
            response = await self.client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise CreditLedgerError("Failed to reach the credit service", str(e))
        if response.is_error:
            raise CreditLedgerError("Credit request failed", _error_detail(response))
        return _json_object(response, CreditLedgerError, "Credit request failed")

    @staticmethod
    def _credits(body: Dict[str, Any], key: str) -> int:
        try:
            return int(body[key])
        except (KeyError, TypeError, ValueError):
            raise CreditLedgerError("Credit request failed", f"Missing or invalid '{key}' in response")

    async def get_balance(self) -> int:
        body = await self._request("GET", "/api/credits")
        return self._credits(body, "credits")

    async def use_credits(self, amount: int, feature: str, description: str) -> bool:
        body = await self._request(
            "POST",
            "/api/credits/use",
            json={"amount": amount, "feature": feature, "description": description},
        )
        return bool(body.get("success"))

    async def refund(self, user_id: str, amount: int, reason: str) -> int:
        body = await self._request(
            "POST",
            "/api/refund-credits",
            json={"userId": user_id, "amount": amount, "reason": reason},
        )
        return self._credits(body, "newCredits")


class HttpFormStore:
    """Persists cover letter records through the service's form endpoints."""

    def __init__(self, client: httpx.AsyncClient):
        self.client = client

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            response = await self.client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise FormStoreError("Failed to reach the form store", str(e))
        if response.is_error:
            raise FormStoreError("Form store request failed", _error_detail(response))
        return response

    async def save(
        self,
        form_id: Optional[str],
        data: FormData,
        cover_letter: Optional[str],
        status: Optional[str] = None,
    ) -> str:
        """Insert on the first save, update afterwards. Returns the record id."""
        payload = data.model_dump(mode="json")
        payload["cover_letter"] = cover_letter or None
        if status:
            payload["status"] = status

        if form_id:
            response = await self._request("PUT", f"{FORMS_PATH}/{form_id}", json=payload)
        else:
            response = await self._request("POST", FORMS_PATH, json=payload)

        record = _json_object(response, FormStoreError, "Failed to save cover letter")
        if not record.get("id"):
            raise FormStoreError("Failed to save cover letter", "No id returned")
        return str(record["id"])

    async def load(self, form_id: str) -> Dict[str, Any]:
        response = await self._request("GET", f"{FORMS_PATH}/{form_id}")
        return _json_object(response, FormStoreError, "Failed to load cover letter")

    async def delete(self, form_id: str) -> None:
        await self._request("DELETE", f"{FORMS_PATH}/{form_id}")
