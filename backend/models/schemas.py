from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


@dataclass(frozen=True)
class CompareRequest:
    """Canonical, validated form of a POST /compare body."""

    prompt: str
    providers: tuple
    image_url: Optional[str] = None
    provider_options: Dict[str, Any] = field(default_factory=dict)
    unsupported_providers: tuple = ()


@dataclass(frozen=True)
class ProviderOutput:
    model: str
    text: str


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ProviderResult(CamelModel):
    provider: str
    status: Literal["success", "error"]
    latency_ms: int = 0
    model: Optional[str] = None
    text: Optional[str] = None
    error: Optional[str] = None


class CompareRequestEcho(CamelModel):
    prompt: str
    image_url: Optional[str] = None
    providers: List[str]
    timeout_ms: int
    unsupported_providers: List[str] = []


class CompareResponse(CamelModel):
    request: CompareRequestEcho
    results: List[ProviderResult]


class ValidationErrorBody(CamelModel):
    error: str
    unsupported_providers: List[str] = []
