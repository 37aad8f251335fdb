"""Pydantic models for chat requests and responses."""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..chat.assembly.types import ContentPart


Resolution = Literal["1K", "2K", "4K"]
AspectRatio = Literal["Auto", "1:1", "3:4", "4:3", "9:16", "16:9"]


class InlineImage(BaseModel):
    """An image attached to the user's prompt."""

    base64_data: str = Field(alias="base64Data")
    mime_type: str = Field(alias="mimeType")

    model_config = ConfigDict(populate_by_name=True)


class HistoryContent(BaseModel):
    """One prior turn of the conversation in the provider's wire shape."""

    role: Literal["user", "model"]
    parts: List[Dict[str, Any]] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True, extra="allow")


class GenerationSettings(BaseModel):
    """Per-request generation options chosen in the client UI."""

    resolution: Resolution = "1K"
    aspect_ratio: AspectRatio = Field(default="Auto", alias="aspectRatio")
    use_grounding: bool = Field(default=False, alias="useGrounding")
    enable_thinking: bool = Field(default=False, alias="enableThinking")
    model_name: Optional[str] = Field(default=None, alias="modelName")
    is_pro: bool = Field(default=False, alias="isPro")
    enable_cdn_image_processing: Optional[bool] = Field(
        default=None, alias="enableCdnImageProcessing"
    )
    resolution_model_map: Optional[Dict[Resolution, str]] = Field(
        default=None, alias="resolutionModelMap"
    )

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def resolve_model(self, default_model: str) -> str:
        """Pick the model for this request; pro mode may map by resolution."""

        if self.is_pro and self.resolution_model_map:
            mapped = self.resolution_model_map.get(self.resolution)
            if mapped:
                return mapped
        return self.model_name or default_model


class ChatRequest(BaseModel):
    """Incoming chat request payload."""

    api_key: Optional[str] = Field(default=None, alias="apiKey")
    history: List[HistoryContent] = Field(default_factory=list)
    prompt: str = ""
    images: List[InlineImage] = Field(default_factory=list)
    settings: GenerationSettings = Field(default_factory=GenerationSettings)

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def user_content(self) -> Dict[str, Any]:
        parts: List[Dict[str, Any]] = [
            {"inlineData": {"mimeType": image.mime_type, "data": image.base64_data}}
            for image in self.images
        ]
        if self.prompt.strip():
            parts.append({"text": self.prompt})
        return {"role": "user", "parts": parts}

    def clean_history(self) -> List[Dict[str, Any]]:
        """Drop thought parts from model turns and any turn left empty."""

        cleaned: List[Dict[str, Any]] = []
        for item in self.history:
            parts = list(item.parts)
            if item.role == "model":
                parts = [part for part in parts if not part.get("thought")]
            if parts:
                cleaned.append({"role": item.role, "parts": parts})
        return cleaned

    def to_gemini_payload(self) -> Dict[str, Any]:
        """Serialize the request body for generateContent endpoints."""

        settings = self.settings
        generation_config: Dict[str, Any] = {
            "responseModalities": ["TEXT", "IMAGE"],
        }
        payload: Dict[str, Any] = {
            "contents": [*self.clean_history(), self.user_content()],
            "generationConfig": generation_config,
        }
        if settings.is_pro:
            image_config: Dict[str, Any] = {"imageSize": settings.resolution}
            if settings.aspect_ratio != "Auto":
                image_config["aspectRatio"] = settings.aspect_ratio
            generation_config["imageConfig"] = image_config
            if settings.use_grounding:
                payload["tools"] = [{"googleSearch": {}}]
            if settings.enable_thinking:
                generation_config["thinkingConfig"] = {"includeThoughts": True}
        return payload


class ChatResponse(BaseModel):
    """Final (or snapshot) result of a chat turn."""

    user_content: Dict[str, Any] = Field(alias="userContent")
    model_parts: List[Dict[str, Any]] = Field(alias="modelParts")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_parts(
        cls, user_content: Dict[str, Any], parts: List[ContentPart]
    ) -> "ChatResponse":
        return cls(
            user_content=user_content,
            model_parts=[part.to_dict() for part in parts],
        )


__all__ = [
    "ChatRequest",
    "ChatResponse",
    "GenerationSettings",
    "HistoryContent",
    "InlineImage",
]
