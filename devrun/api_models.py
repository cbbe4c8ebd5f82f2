from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_MEMORY_SIZE = 256
DEFAULT_TIMEOUT_S = 60
DEFAULT_RUNTIME = "nodejs6.10"


# --- Service descriptor (read from the service file) ---


class ProviderDefaults(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str | None = None
    runtime: str | None = None
    memory_size: int | None = Field(None, alias="memorySize", ge=1)
    timeout: int | None = Field(None, ge=1)
    labels: dict[str, Any] = Field(default_factory=dict)
    environment: dict[str, Any] = Field(default_factory=dict)

    @field_validator("labels", "environment", mode="before")
    @classmethod
    def _none_is_empty(cls, v: Any) -> Any:
        return {} if v is None else v


class FunctionDefinition(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    handler: str = Field(..., description="module.function, e.g. handler.hello")
    events: list[Any] = Field(default_factory=list)
    runtime: str | None = None
    memory_size: int | None = Field(None, alias="memorySize", ge=1)
    timeout: int | None = Field(None, ge=1)
    labels: dict[str, Any] | None = None
    environment: dict[str, Any] | None = None

    @field_validator("events", mode="before")
    @classmethod
    def _none_is_empty(cls, v: Any) -> Any:
        return [] if v is None else v


class ServiceDescriptor(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    service: str
    service_path: str = Field(..., alias="servicePath")
    provider: ProviderDefaults = Field(default_factory=ProviderDefaults)
    functions: dict[str, FunctionDefinition] = Field(default_factory=dict)

    @field_validator("service", mode="before")
    @classmethod
    def _service_name(cls, v: Any) -> Any:
        # `service: {name: foo}` is accepted as well as `service: foo`
        if isinstance(v, dict):
            return v.get("name")
        return v

    @field_validator("functions", mode="before")
    @classmethod
    def _none_is_empty(cls, v: Any) -> Any:
        return {} if v is None else v


# --- Emulator payloads ---


class FunctionDeploymentConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    function_id: str = Field(..., alias="functionId")
    handler_path: str = Field(..., alias="handlerPath", description="Handler module path under the service root")
    handler_name: str = Field(..., alias="handlerName")
    runtime: str = DEFAULT_RUNTIME
    memory_size: int = Field(DEFAULT_MEMORY_SIZE, alias="memorySize", ge=1)
    timeout: int = Field(DEFAULT_TIMEOUT_S, ge=1, description="Seconds")
    labels: dict[str, Any] = Field(default_factory=dict)
    environment: dict[str, Any] = Field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


# --- Gateway payloads ---


class FunctionProvider(BaseModel):
    type: str = "http"
    url: str


class FunctionEntry(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    function_id: str = Field(..., alias="functionId")
    provider: FunctionProvider


class Subscription(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    event: str = Field(..., description="'http' or a custom event name")
    function_id: str = Field(..., alias="functionId")
    method: str | None = None
    path: str | None = None

    @property
    def is_http(self) -> bool:
        return self.event == "http"

    @property
    def key(self) -> tuple[str, ...]:
        if self.is_http:
            return ("http", self.path or "/")
        return ("event", self.event)


class GatewayConfiguration(BaseModel):
    functions: list[FunctionEntry] = Field(default_factory=list)
    subscriptions: list[Subscription] = Field(default_factory=list)

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)
