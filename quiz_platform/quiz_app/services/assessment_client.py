"""HTTP clients for the external assessment backend and the re-engagement hook."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests


class AssessmentAPIError(RuntimeError):
    """Raised for transport errors, non-2xx replies and unsuccessful envelopes."""

    def __init__(self, endpoint: str, message: str, status: Optional[int] = None):
        self.endpoint = endpoint
        self.message = message
        self.status = status
        if status is not None:
            super().__init__(f"{endpoint} failed with status {status}: {message}")
        else:
            super().__init__(f"{endpoint} failed: {message}")


def _error_message(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200] or response.reason or "Unknown error"
    if isinstance(body, dict):
        return str(body.get("message") or body.get("error") or "Unknown error")
    return str(body)[:200]


@dataclass
class AssessmentClient:
    api_base: str
    entry_url: str
    cpo: str = ""
    origin: str = ""
    utm_source: str = "certified_wa_flow"
    product_slug: str = "certificate_type_3"
    timeout: float = 30
    generate_timeout: float = 15
    entry_timeout: float = 10

    def _headers(self, token: Optional[str] = None) -> Dict[str, str]:
        headers = {
            "Accept": "application/json, text/plain, */*",
            "Content-Type": "application/json",
        }
        if self.origin:
            headers["Origin"] = self.origin
            headers["Referer"] = f"{self.origin.rstrip('/')}/"
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def _call(
        self,
        endpoint: str,
        method: str,
        url: str,
        *,
        timeout: float,
        token: Optional[str] = None,
        payload: Optional[dict] = None,
        params: Optional[dict] = None,
    ) -> Dict[str, Any]:
        try:
            response = requests.request(
                method,
                url,
                json=payload,
                params=params,
                headers=self._headers(token),
                timeout=timeout,
            )
        except requests.RequestException as exc:
            raise AssessmentAPIError(endpoint, str(exc)) from exc

        if not 200 <= response.status_code < 300:
            raise AssessmentAPIError(endpoint, _error_message(response), response.status_code)
        try:
            body = response.json()
        except ValueError as exc:
            raise AssessmentAPIError(endpoint, "Response is not JSON", response.status_code) from exc
        if not isinstance(body, dict):
            raise AssessmentAPIError(endpoint, "Unexpected response shape", response.status_code)
        if body.get("result") != "success":
            raise AssessmentAPIError(endpoint, str(body.get("message") or "Unknown error"))
        return body

    def _url(self, path: str) -> str:
        return f"{self.api_base.rstrip('/')}/{path.lstrip('/')}"

    def create_entry(self, subject: str) -> Dict[str, Any]:
        """Register a new skill attempt; `data.id` is the external skill id."""

        payload = {
            "subject_name": subject,
            "utm_object": {"utm_source": self.utm_source, "utm_medium": "", "utm_campaign": ""},
            "is_new_ui": False,
        }
        return self._call(
            "new_entry_test_v2",
            "POST",
            self.entry_url,
            timeout=self.entry_timeout,
            payload=payload,
            params={"__cpo": self.cpo},
        )

    def generate_quiz(self, skill_id: int) -> Dict[str, Any]:
        return self._call(
            "generate",
            "POST",
            self._url("generate"),
            timeout=self.generate_timeout,
            payload={"certified_user_skill_id": skill_id, "is_new_ui": True},
        )

    def exchange_credential(
        self,
        skill_id: int,
        *,
        email: str,
        phone_number: str,
        name: str,
        password: str,
    ) -> str:
        body = self._call(
            "continue",
            "POST",
            self._url("continue"),
            timeout=self.timeout,
            payload={
                "certified_user_skill_id": skill_id,
                "email": email,
                "phone_number": phone_number,
                "name": name,
                "password": password,
            },
        )
        token = body.get("data")
        if not token or not isinstance(token, str):
            raise AssessmentAPIError("continue", "No bearer token in response")
        return token

    def save_user_response(
        self,
        skill_id: int,
        attempt: List[dict],
        completion_seconds: int,
        score: int,
    ) -> Dict[str, Any]:
        return self._call(
            "save_user_response",
            "POST",
            self._url("save_user_response"),
            timeout=self.timeout,
            payload={
                "certified_user_skill_quiz_id": skill_id,
                "quiz_attempt_object": attempt,
                "quiz_completion_time_in_seconds": completion_seconds,
                "quiz_score": score,
            },
        )

    def claim_certificate(self, skill_id: int, token: str) -> Dict[str, Any]:
        return self._call(
            "claim_available_certificate",
            "POST",
            self._url("certified_user_skill/claim_available_certificate"),
            timeout=self.timeout,
            token=token,
            payload={"certified_user_skill_id": skill_id},
        )

    def create_paid_test(self, skill_id: int, token: str) -> Dict[str, Any]:
        payload = {
            "items": [
                {
                    "product_slug": self.product_slug,
                    "product_quantity": 1,
                    "entity_type": "skill",
                    "entity_id": int(skill_id),
                }
            ],
            "utm_source": "",
            "scholarship_type": "",
        }
        return self._call(
            "create_v2_test",
            "POST",
            self._url("create_v2_test"),
            timeout=self.timeout,
            token=token,
            payload=payload,
        )

    def fetch_analysis(self, skill_id: int, token: str) -> Dict[str, Any]:
        body = self._call(
            "analysis",
            "GET",
            self._url("analysis"),
            timeout=self.timeout,
            token=token,
            params={"certified_user_skill_quiz_id": skill_id},
        )
        embedded = body.get("status_code")
        if embedded is not None and str(embedded) != "200":
            raise AssessmentAPIError("analysis", str(body.get("message") or "Embedded error"), int(embedded))
        return body


@dataclass
class ReengagementClient:
    url: str
    timeout: float = 10

    def trigger(self, phone: str, name: str) -> int:
        """POST the contact to the re-engagement hook and return the HTTP status."""

        if not self.url:
            raise RuntimeError("REENGAGEMENT_URL is not configured")
        response = requests.post(
            self.url,
            json={"phone": phone, "name": name},
            headers={"Content-Type": "application/json"},
            timeout=self.timeout,
        )
        return response.status_code


def build_assessment_client(config) -> AssessmentClient:
    return AssessmentClient(
        api_base=config.get("ASSESSMENT_API_BASE", ""),
        entry_url=config.get("ASSESSMENT_ENTRY_URL", ""),
        cpo=config.get("ASSESSMENT_CPO", ""),
        origin=config.get("ASSESSMENT_ORIGIN", ""),
        utm_source=config.get("ASSESSMENT_UTM_SOURCE", "certified_wa_flow"),
        product_slug=config.get("PAID_TEST_PRODUCT_SLUG", "certificate_type_3"),
        timeout=config.get("ASSESSMENT_TIMEOUT_SEC", 30),
        generate_timeout=config.get("ASSESSMENT_GENERATE_TIMEOUT_SEC", 15),
        entry_timeout=config.get("ASSESSMENT_ENTRY_TIMEOUT_SEC", 10),
    )


def build_reengagement_client(config) -> ReengagementClient:
    return ReengagementClient(
        url=config.get("REENGAGEMENT_URL", ""),
        timeout=config.get("REENGAGEMENT_TIMEOUT_SEC", 10),
    )

