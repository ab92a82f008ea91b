# synnia/services.py
"""
External generation services.

The core never talks to an AI provider directly. Executors call these
abstract services; concrete clients are supplied by the embedding
application (or by tests).
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

import httpx

logger = logging.getLogger(__name__)


@dataclass
class Credentials:
    """Provider credentials resolved at call time."""
    api_key: str = ""
    base_url: Optional[str] = None

    def __bool__(self) -> bool:
        return bool(self.api_key or self.base_url)


@dataclass
class ModelInput:
    """Request to a generation model."""
    config: Dict[str, Any] = field(default_factory=dict)
    prompt: Optional[str] = None
    negative_prompt: Optional[str] = None
    images: Optional[List[Any]] = None
    credentials: Credentials = field(default_factory=Credentials)


@dataclass
class ModelResult:
    """
    Response from a generation model.

    ``data`` carries a ``type`` of "images" (with ``images: [{url}]``),
    "video" (with ``video_url``) or "text" (with ``text``).
    """
    success: bool
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


class ModelService(ABC):
    """A model that can be executed with a ModelInput."""

    id: str = ""
    provider: Optional[str] = None
    supported_providers: List[str] = []
    capabilities: List[str] = []

    @abstractmethod
    async def execute(self, request: ModelInput) -> ModelResult:
        """Run the model."""
        ...


class ModelRegistry:
    """Models by id."""

    def __init__(self):
        self._models: Dict[str, ModelService] = {}

    def register(self, model: ModelService) -> None:
        if model.id in self._models:
            logger.warning(f"Overwriting model {model.id}")
        self._models[model.id] = model

    def get(self, model_id: str) -> Optional[ModelService]:
        return self._models.get(model_id)

    def ids(self) -> List[str]:
        return list(self._models)

    def with_capability(self, capability: str) -> List[ModelService]:
        return [m for m in self._models.values() if capability in (m.capabilities or [])]


@dataclass
class LLMRequest:
    """A single LLM completion request."""
    user_prompt: str
    system_prompt: Optional[str] = None
    model_id: Optional[str] = None
    temperature: float = 0.7
    max_tokens: int = 2048
    json_mode: bool = False
    provider_id: Optional[str] = None


@dataclass
class LLMResponse:
    """Result of an LLM call."""
    success: bool
    text: str = ""
    data: Any = None
    error: Optional[str] = None
    truncated: bool = False


class LLMService(ABC):
    """Text completion provider."""

    @abstractmethod
    async def complete(self, request: LLMRequest) -> LLMResponse:
        """Complete a prompt."""
        ...


class CredentialProvider(Protocol):
    def credentials_for(self, provider: str) -> Credentials:
        ...


class StaticCredentials:
    """Credentials from an in-memory mapping of provider -> Credentials."""

    def __init__(self, credentials: Optional[Dict[str, Credentials]] = None):
        self._credentials = dict(credentials or {})

    def credentials_for(self, provider: str) -> Credentials:
        return self._credentials.get(provider, Credentials())


@dataclass
class Services:
    """Collaborators handed to executors through the execution context."""
    llm: Optional[LLMService] = None
    models: ModelRegistry = field(default_factory=ModelRegistry)
    credentials: CredentialProvider = field(default_factory=StaticCredentials)
    http_transport: Optional[httpx.AsyncBaseTransport] = None
    http_timeout: float = 30.0

    def http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self.http_transport, timeout=self.http_timeout)
