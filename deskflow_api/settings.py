from dataclasses import dataclass

# With no API token GitHub allows 60 requests per hour; caching for 2 minutes
# keeps us at 30 per hour at most.
CACHE_AGE_SECONDS = 120
CACHE_AGE_ENV = "VERSION_CACHE_SECONDS"

# Too low and the page holds nothing but the 'continuous' release.
RELEASES_PER_PAGE = 10
RELEASES_PER_PAGE_ENV = "RELEASES_PER_PAGE"

FALLBACK_TTL_ENV = "VERSION_FALLBACK_SECONDS"

VOTE_RETENTION_SECONDS = 172800  # 48 hours
VOTE_RETENTION_ENV = "VOTE_RETENTION_SECONDS"

AWAIT_CONTEST_ENV = "AWAIT_CONTEST"
LOG_LEVEL_ENV = "LOG_LEVEL"
LOG_LEVEL_DEFAULT = "INFO"

GITHUB_OWNER = "deskflow"
GITHUB_REPO = "deskflow"
REPO_URL = "https://github.com/deskflow/deskflow-api"

APP_MARKER = "Deskflow"
CONTINUOUS_TAG = "continuous"

USER_AGENT_HEADER = "user-agent"
LANGUAGE_HEADER = "X-Deskflow-Language"
VERSION_HEADER = "X-Deskflow-Version"
REQUESTER_HEADER = "cf-connecting-ip"
REQUEST_ID_HEADER = "cf-ray"

KV_BINDING_NAME = "APP_VERSION"
SLOW_KV_BINDING_NAME = "SlowKV"
SLOW_KV_DEFAULT_NAME = "default"
SLOW_KV_VOTES_NAME = "votes"

VERSION_KV_KEY = "latest"
VERSION_SLOW_KEY = "version"

_TRUTHY = ("1", "true", "yes", "on")


def get_env_binding(env, name: str):
    if env is None:
        return None
    try:
        return getattr(env, name)
    except AttributeError:
        pass
    try:
        return env[name]
    except Exception:
        return None


def parse_int(value: str | None, default: int = 0) -> int:
    try:
        return int(value) if value is not None else default
    except (TypeError, ValueError):
        return default


def clamp_int(value: int, min_value: int, max_value: int) -> int:
    return max(min_value, min(max_value, value))


def parse_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return str(value).strip().lower() in _TRUTHY


def _env_str(env, name: str) -> str | None:
    value = get_env_binding(env, name)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


@dataclass(frozen=True)
class Settings:
    cache_age_seconds: int = CACHE_AGE_SECONDS
    releases_per_page: int = RELEASES_PER_PAGE
    fallback_ttl_seconds: int | None = None
    vote_retention_seconds: int = VOTE_RETENTION_SECONDS
    await_contest: bool = False
    log_level: str = LOG_LEVEL_DEFAULT
    github_owner: str = GITHUB_OWNER
    github_repo: str = GITHUB_REPO
    repo_url: str = REPO_URL

    @classmethod
    def from_env(cls, env) -> "Settings":
        """
        Build settings from worker environment variables.
        Missing or malformed values fall back to the defaults; numbers are clamped.
        """
        cache_age = parse_int(_env_str(env, CACHE_AGE_ENV), CACHE_AGE_SECONDS)
        per_page = parse_int(_env_str(env, RELEASES_PER_PAGE_ENV), RELEASES_PER_PAGE)
        retention = parse_int(_env_str(env, VOTE_RETENTION_ENV), VOTE_RETENTION_SECONDS)

        fallback_ttl = None
        raw_fallback = _env_str(env, FALLBACK_TTL_ENV)
        if raw_fallback is not None:
            parsed = parse_int(raw_fallback, 0)
            if parsed > 0:
                fallback_ttl = clamp_int(parsed, 1, 2592000)

        return cls(
            cache_age_seconds=clamp_int(cache_age, 1, 86400),
            releases_per_page=clamp_int(per_page, 1, 100),
            fallback_ttl_seconds=fallback_ttl,
            vote_retention_seconds=clamp_int(retention, 86400, 2592000),
            await_contest=parse_bool(_env_str(env, AWAIT_CONTEST_ENV)),
            log_level=(_env_str(env, LOG_LEVEL_ENV) or LOG_LEVEL_DEFAULT).upper(),
        )
