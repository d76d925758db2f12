from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, List, Optional, Union

import httpx
from pydantic import ValidationError

from studyplanner.schemas.exam import FullTest, quick_test_adapter
from studyplanner.schemas.grading import GradingResult
from studyplanner.schemas.plan import GenerateResponse
from studyplanner.schemas.questions import KeywordQuestionsOut, McqSetOut, PlainQuestionsOut

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:8000/api"


class GatewayError(Exception):
    """A gateway call that did not produce a usable body."""

    def __init__(self, status_code: Optional[int], code: str, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message


class GatewayClient:
    """Async client for the study planner API.

    No request timeout is set: generation can take as long as the model
    takes, and the quiz countdown is the only clock the user sees.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        *,
        client: Optional[httpx.AsyncClient] = None,
        user_id: Optional[str] = None,
    ):
        headers = {"X-User-Id": user_id} if user_id else None
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=None, headers=headers)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "GatewayClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        try:
            res = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise GatewayError(None, "NETWORK_ERROR", str(e) or type(e).__name__) from e

        if res.status_code == 204:
            return None
        try:
            body = res.json()
        except ValueError:
            body = None

        if res.is_success:
            if body is None:
                raise GatewayError(res.status_code, "MALFORMED_RESPONSE", "Response body is not JSON")
            return body

        if isinstance(body, dict):
            code = str(body.get("code") or "HTTP_ERROR")
            message = str(body.get("error") or res.reason_phrase or "Request failed")
        else:
            code, message = "HTTP_ERROR", res.reason_phrase or "Request failed"
        logger.info("%s %s -> %s %s", method, path, res.status_code, code)
        raise GatewayError(res.status_code, code, message)

    @staticmethod
    def _parse(model: Any, body: Any) -> Any:
        try:
            if hasattr(model, "model_validate"):
                return model.model_validate(body)
            return model.validate_python(body)
        except ValidationError as e:
            raise GatewayError(200, "MALFORMED_RESPONSE", str(e)) from e

    async def generate(
        self,
        data: bytes,
        *,
        filename: str,
        content_type: str,
        end_date: date,
        include_notes: bool = False,
    ) -> GenerateResponse:
        body = await self._request(
            "POST",
            "/generate",
            params={"include_notes": "true"} if include_notes else None,
            files={"syllabusFile": (filename, data, content_type)},
            data={"endDate": end_date.isoformat()},
        )
        return self._parse(GenerateResponse, body)

    async def questions(
        self, topic: str, *, with_keywords: bool = False
    ) -> Union[KeywordQuestionsOut, PlainQuestionsOut]:
        body = await self._request("POST", "/questions", json={"topic": topic, "with_keywords": with_keywords})
        return self._parse(KeywordQuestionsOut if with_keywords else PlainQuestionsOut, body)

    async def mcqs(self, topic: str) -> McqSetOut:
        body = await self._request("POST", "/mcqs", json={"topic": topic})
        return self._parse(McqSetOut, body)

    async def quick_test(self, topic: str, test_type: str):
        body = await self._request("POST", "/quick-test", json={"topic": topic, "testType": test_type})
        return self._parse(quick_test_adapter, body)

    async def full_test(self, subject: str, syllabus_text: str) -> FullTest:
        body = await self._request("POST", "/test", json={"subject": subject, "syllabusText": syllabus_text})
        return self._parse(FullTest, body)

    async def grade(self, *, question: str, keywords: List[str], user_answer: str, marks: int) -> GradingResult:
        payload: Dict[str, Any] = {
            "question": question,
            "keywords": list(keywords),
            "userAnswer": user_answer,
            "marks": int(marks),
        }
        body = await self._request("POST", "/grade", json=payload)
        return self._parse(GradingResult, body)
