from pydantic import BaseModel
from typing import Any


class ChatRequest(BaseModel):
    # Validated by AIGatewayService so failures map to 400, not 422.
    messages: Any = None


class TranslateRequest(BaseModel):
    text: Any = None
    targetLanguage: Any = None


class TranslateResponse(BaseModel):
    translatedText: str
