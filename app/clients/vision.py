from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Protocol

import httpx

from app.errors import VisionServiceError


@dataclass(frozen=True)
class SafeSearchAnnotation:
    """Категориальные оценки SafeSearch по трем осям."""

    adult: str | None
    violence: str | None
    racy: str | None


@dataclass(frozen=True)
class LabelAnnotation:
    description: str
    score: float


class VisionAnalyzer(Protocol):
    """Минимальный контракт сервиса анализа изображений."""

    async def safety_annotate(self, image_url: str) -> SafeSearchAnnotation | None:
        ...

    async def label_detect(self, image_url: str) -> list[LabelAnnotation]:
        ...


class VisionClient:
    """Клиент Google Cloud Vision (REST images:annotate) поверх httpx."""

    MAX_LABELS = 10

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        api_key: str,
        endpoint: str = "https://vision.googleapis.com/v1/images:annotate",
    ) -> None:
        self._http = http_client
        self._api_key = api_key
        self._endpoint = endpoint

    async def safety_annotate(self, image_url: str) -> SafeSearchAnnotation | None:
        """
        Возвращает оценки SafeSearch либо None, если сервис ответил без аннотации.
        Любая сетевая или протокольная ошибка поднимается как VisionServiceError.
        """
        response = await self._annotate(image_url, {"type": "SAFE_SEARCH_DETECTION"})
        annotation = response.get("safeSearchAnnotation")
        if not annotation:
            return None
        return SafeSearchAnnotation(
            adult=annotation.get("adult"),
            violence=annotation.get("violence"),
            racy=annotation.get("racy"),
        )

    async def label_detect(self, image_url: str) -> list[LabelAnnotation]:
        response = await self._annotate(
            image_url,
            {"type": "LABEL_DETECTION", "maxResults": self.MAX_LABELS},
        )
        labels = []
        for raw_label in response.get("labelAnnotations") or []:
            description = raw_label.get("description")
            if not description:
                continue
            labels.append(
                LabelAnnotation(
                    description=str(description),
                    score=float(raw_label.get("score") or 0.0),
                )
            )
        return labels

    async def _annotate(self, image_url: str, feature: Mapping[str, Any]) -> Mapping[str, Any]:
        payload = {
            "requests": [
                {
                    "image": {"source": {"imageUri": image_url}},
                    "features": [dict(feature)],
                }
            ]
        }
        try:
            http_response = await self._http.post(
                self._endpoint,
                params={"key": self._api_key},
                json=payload,
            )
            http_response.raise_for_status()
            body = http_response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise VisionServiceError("Vision request failed") from exc

        responses = body.get("responses") if isinstance(body, dict) else None
        if not responses:
            return {}
        response = responses[0]
        if "error" in response:
            message = response["error"].get("message", "unknown error")
            raise VisionServiceError(f"Vision annotate failed: {message}")
        return response
