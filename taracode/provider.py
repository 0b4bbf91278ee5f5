"""LLM server detection: vendor, served models, and the chat client."""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence, Tuple

import requests

from .errors import ProviderError
from .llm import LLMAdapter
from .logger import get_logger

_log = get_logger(__name__)

PROBE_TIMEOUT = 5
MODELS_TIMEOUT = 10
MAX_RETRIES = 3
MAX_BACKOFF = 30


class ProviderType(str, Enum):
    VLLM = "vllm"
    OLLAMA = "ollama"
    LLAMACPP = "llama.cpp"
    UNKNOWN = "unknown"

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]


_DISPLAY_NAMES = {
    ProviderType.VLLM: "vLLM",
    ProviderType.OLLAMA: "Ollama",
    ProviderType.LLAMACPP: "llama.cpp",
    ProviderType.UNKNOWN: "Unknown",
}


@dataclass
class ProviderInfo:
    type: ProviderType
    name: str
    host: str
    model: str = ""
    models: List[str] = field(default_factory=list)
    api_path: str = "/v1"
    supports_tools: bool = False


def parse_vendor(vendor: Optional[str]) -> ProviderType:
    """Map a configured vendor string to a type; UNKNOWN means auto-detect."""
    vendor = (vendor or "").strip().lower()
    if vendor == "vllm":
        return ProviderType.VLLM
    if vendor == "ollama":
        return ProviderType.OLLAMA
    if vendor in ("llama.cpp", "llamacpp", "llama"):
        return ProviderType.LLAMACPP
    return ProviderType.UNKNOWN


def probe_endpoint(host: str, path: str, timeout: float = PROBE_TIMEOUT) -> bool:
    """True if ``host + path`` answers with anything but 404 or a 5xx."""
    url = host.rstrip("/") + path
    try:
        resp = requests.get(url, timeout=timeout)
    except requests.RequestException as e:
        _log.debug("Probe %s failed: %s", url, e)
        return False
    # 401/403 still prove the endpoint exists.
    return 200 <= resp.status_code < 500 and resp.status_code != 404


def detect_provider_type(host: str) -> ProviderType:
    host = host.rstrip("/")
    lowered = host.lower()

    if "ollama" in lowered:
        return ProviderType.OLLAMA
    if "vllm" in lowered:
        return ProviderType.VLLM
    if "llama" in lowered:
        return ProviderType.LLAMACPP

    if probe_endpoint(host, "/api/tags"):
        return ProviderType.OLLAMA
    if probe_endpoint(host, "/v1/models"):
        return ProviderType.VLLM
    return ProviderType.UNKNOWN


def _is_retryable(exc: Exception) -> bool:
    if isinstance(exc, (requests.ConnectionError, requests.Timeout)):
        return True
    message = str(exc).lower()
    return any(s in message for s in (
        "connection refused", "connection reset", "no such host", "temporary failure",
    ))


class Provider:
    """An OpenAI-compatible model server."""

    provider_type = ProviderType.VLLM
    supports_tools = True

    def __init__(self, host: str, api_key: str = ""):
        self.host = host.rstrip("/")
        self.api_key = api_key
        self.info = ProviderInfo(
            type=self.provider_type,
            name=self.provider_type.display_name,
            host=self.host,
            supports_tools=self.supports_tools,
        )

    def _headers(self) -> dict:
        if self.api_key:
            return {"Authorization": f"Bearer {self.api_key}"}
        return {}

    def _get_json(self, path: str) -> dict:
        resp = requests.get(self.host + path, headers=self._headers(), timeout=MODELS_TIMEOUT)
        if resp.status_code != 200:
            raise ProviderError(f"unexpected status: {resp.status_code}")
        try:
            return resp.json()
        except ValueError as e:
            raise ProviderError(f"decode response: {e}")

    def detect_models_openai(self) -> List[str]:
        data = self._get_json("/v1/models")
        models = [m.get("id", "") for m in data.get("data") or [] if isinstance(m, dict)]
        models = [m for m in models if m]
        self.info.models = models
        return models

    def detect_models(self) -> List[str]:
        return self.detect_models_openai()

    def detect_models_with_retry(self, max_retries: int = MAX_RETRIES,
                                 notify=None) -> List[str]:
        """detect_models() with exponential backoff on transient network errors."""
        delay = 1
        for attempt in range(1, max_retries + 1):
            try:
                return self.detect_models()
            except (requests.RequestException, ProviderError) as e:
                if not _is_retryable(e) or attempt == max_retries:
                    raise
                if notify:
                    notify(f"Model detection failed, retrying in {delay}s ({attempt}/{max_retries})...")
                _log.info("detect_models attempt %d failed: %s", attempt, e)
                time.sleep(delay)
                delay = min(delay * 2, MAX_BACKOFF)
        return []

    def create_client(self) -> LLMAdapter:
        return LLMAdapter(
            model=self.info.model,
            api_base=self.host + self.info.api_path,
            api_key=self.api_key or None,
        )

    def set_model(self, model: str):
        self.info.model = model


class VLLMProvider(Provider):
    provider_type = ProviderType.VLLM
    supports_tools = True


class LlamaCppProvider(Provider):
    provider_type = ProviderType.LLAMACPP
    supports_tools = False


class OllamaProvider(Provider):
    provider_type = ProviderType.OLLAMA
    supports_tools = False

    def detect_models(self) -> List[str]:
        try:
            models = self.detect_models_openai()
        except (requests.RequestException, ProviderError) as e:
            _log.info("Ollama /v1/models unavailable (%s); trying /api/tags", e)
            models = []
        if models:
            return models
        return self._detect_models_native()

    def _detect_models_native(self) -> List[str]:
        data = self._get_json("/api/tags")
        models = [m.get("name", "") for m in data.get("models") or [] if isinstance(m, dict)]
        models = [m for m in models if m]
        self.info.models = models
        return models


_PROVIDERS = {
    ProviderType.VLLM: VLLMProvider,
    ProviderType.OLLAMA: OllamaProvider,
    ProviderType.LLAMACPP: LlamaCppProvider,
}


def create_provider(host: str, vendor: str = "", api_key: str = "") -> Provider:
    """Build the provider for ``host``; auto-detects when vendor is empty/auto."""
    if not host:
        raise ProviderError("host is required")
    provider_type = parse_vendor(vendor)
    if provider_type is ProviderType.UNKNOWN:
        provider_type = detect_provider_type(host)
    if provider_type is ProviderType.UNKNOWN:
        # Most OpenAI-compatible servers behave like vLLM.
        provider_type = ProviderType.VLLM
    _log.info("Provider for %s: %s", host, provider_type.value)
    return _PROVIDERS[provider_type](host, api_key)


def select_model(configured: str, detected: Optional[Sequence[str]],
                 detect_error: Optional[Exception] = None) -> Tuple[str, str, bool]:
    """Choose the model to talk to.

    Returns ``(model, message, is_warning)``; raises ProviderError when
    there is nothing to fall back on.
    """
    if detect_error is not None or detected is None:
        if configured:
            return (configured,
                    f"Could not auto-detect model ({detect_error}), "
                    f"using configured model: {configured}", True)
        raise ProviderError(
            f"failed to detect model and no fallback configured: {detect_error}")

    if detected:
        if configured:
            if configured in detected:
                return configured, f"Using configured model: {configured}", False
            return (detected[0],
                    f"Configured model '{configured}' not available on server. "
                    f"Available: {', '.join(detected)}. Using: {detected[0]}", True)
        return detected[0], f"Auto-detected model: {detected[0]}", False

    if configured:
        return configured, f"Using configured model: {configured}", False
    raise ProviderError("no models available and no fallback configured")
