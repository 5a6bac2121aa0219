import json
import re
from typing import Annotated, Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


FALLBACK_POLICY_NAMES = ("fail-open", "fail-closed")


def _parse_cors_origins(raw: Any) -> list[str]:
    if raw is None:
        return []
    if isinstance(raw, list):
        items = [str(v).strip() for v in raw]
        return [v for v in items if v]

    raw = str(raw).strip()
    if not raw or raw == "[]":
        return []
    if raw == "*":
        return ["*"]

    if raw.startswith("["):
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, list):
            items = [str(v).strip() for v in parsed]
            return [v for v in items if v]

    parts = [p for p in re.split(r"[,\s]+", raw) if p]
    if "*" in parts:
        return ["*"]
    return parts


def _parse_rate_limit_rules(raw: Any) -> dict[str, dict[str, int]]:
    """Decode route rules from the environment.

    Two spellings are accepted:

    - JSON: ``{"/hello": {"count": 100, "time": 1000}}``
    - Compact: ``/hello=100/1000,/slow=5/60000`` (count/time in milliseconds)

    Values are only normalised here. Range checks happen when the rules are
    turned into ``RateLimitRule`` objects.
    """
    if raw is None:
        return {}
    if isinstance(raw, dict):
        items = raw.items()
    else:
        raw = str(raw).strip()
        if not raw or raw == "{}":
            return {}
        if raw.startswith("{"):
            try:
                parsed = json.loads(raw)
            except json.JSONDecodeError as e:
                raise ValueError(f"rate_limit_rules is not valid JSON: {e}") from e
            if not isinstance(parsed, dict):
                raise ValueError("rate_limit_rules JSON must be an object")
            items = parsed.items()
        else:
            items = []
            for part in (p.strip() for p in raw.split(",")):
                if not part:
                    continue
                path, sep, spec = part.partition("=")
                count, slash, window = spec.partition("/")
                if not sep or not slash:
                    raise ValueError(
                        f"Invalid rate limit rule '{part}', expected PATH=COUNT/MILLIS"
                    )
                items.append((path.strip(), {"count": count, "time": window}))

    rules: dict[str, dict[str, int]] = {}
    for path, value in items:
        path = str(path).strip()
        if not path.startswith("/"):
            raise ValueError(f"Rate limit rule path must start with '/': {path!r}")
        if isinstance(value, dict):
            count = value.get("count")
            window = value.get("time", 1000)
        elif isinstance(value, (list, tuple)) and len(value) == 2:
            count, window = value
        else:
            raise ValueError(f"Invalid rate limit rule for {path}: {value!r}")
        try:
            rules[path] = {"count": int(count), "time": int(window)}
        except (TypeError, ValueError) as e:
            raise ValueError(f"Rate limit rule for {path} must be integers") from e
    return rules


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be configured via environment variables or .env file.
    """

    # Debug mode - enables detailed error responses
    debug: bool = False

    # Logging settings
    log_level: str = "INFO"
    log_format: str = "text"  # text | structured | json

    # Redis settings (shared counter store)
    redis_enabled: bool = False
    redis_url: str = "redis://localhost:6379/0"
    redis_socket_timeout: float = 0.5  # Bounded round-trip for every counter call

    # Rate limiting settings
    rate_limit_enabled: bool = True
    rate_limit_key_prefix: str = "rate_limit"
    rate_limit_fallback_policy: str = "fail-open"  # fail-open | fail-closed

    # Route -> {"count": n, "time": ms}. Defaults mirror the /hello endpoint.
    rate_limit_rules: Annotated[dict[str, dict[str, int]], NoDecode] = {
        "/hello": {"count": 100, "time": 1000},
    }

    # CORS settings
    cors_origins: Annotated[list[str], NoDecode] = ["*"]

    @field_validator("cors_origins", mode="before")
    @classmethod
    def decode_cors_origins(cls, v: Any) -> list[str]:
        return _parse_cors_origins(v)

    @field_validator("rate_limit_rules", mode="before")
    @classmethod
    def decode_rate_limit_rules(cls, v: Any) -> dict[str, dict[str, int]]:
        return _parse_rate_limit_rules(v)

    @field_validator("rate_limit_fallback_policy")
    @classmethod
    def validate_fallback_policy(cls, v: str) -> str:
        """Normalise and validate the store-failure policy name."""
        normalized = v.strip().lower().replace("_", "-")
        if normalized not in FALLBACK_POLICY_NAMES:
            raise ValueError(
                f"rate_limit_fallback_policy must be one of {FALLBACK_POLICY_NAMES}"
            )
        return normalized

    @field_validator("redis_socket_timeout")
    @classmethod
    def validate_timeout_positive(cls, v: float) -> float:
        """Validate timeout values are positive."""
        if v <= 0:
            raise ValueError("Timeout values must be positive")
        return v

    @field_validator("rate_limit_key_prefix")
    @classmethod
    def validate_key_prefix(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("rate_limit_key_prefix must not be empty")
        return v

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


# Global settings instance
settings = Settings()
