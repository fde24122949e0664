"""
Client identity parsing for the popularity contest.

Two identity string formats are understood:

- structured: ``Deskflow/1.18.0 (Windows 11 Version 23H2; windows; 1.18.0; en_US)``,
  fields are os, raw os family, app version and language;
- legacy: ``Deskflow 1.17.0 on Ubuntu 24.04``, where the OS follows "on " and
  language/version arrive in the X-Deskflow-Language / X-Deskflow-Version headers.
"""

import re
from dataclasses import asdict, dataclass

from deskflow_api.errors import UserAgentError
from deskflow_api.settings import APP_MARKER

_STRUCTURED_RE = re.compile(rf"^{re.escape(APP_MARKER)}/(?P<version>\S+) \((?P<details>.*)\)\s*$")
_LEGACY_OS_RE = re.compile(r"on (.+)")
_STRUCTURED_FIELD_COUNT = 4

# Checked in order; the first matching term wins.
_OS_FAMILIES = (
    ("Windows", ("windows",)),
    ("macOS", ("macos",)),
    ("Linux", ("linux", "flatpak")),
    ("BSD", ("bsd",)),
)
OTHER_OS_FAMILY = "Other"


@dataclass(frozen=True)
class IdentityInfo:
    os: str | None = None
    os_family: str | None = None
    language: str | None = None
    version: str | None = None

    def is_empty(self) -> bool:
        return not (self.os or self.os_family or self.language or self.version)

    def to_dict(self) -> dict:
        return asdict(self)


def os_family(os: str | None) -> str | None:
    if not os or not os.strip():
        return None
    lowered = os.lower()
    for family, terms in _OS_FAMILIES:
        if any(term in lowered for term in terms):
            return family
    return OTHER_OS_FAMILY


def _clean(value: str | None) -> str | None:
    value = (value or "").strip()
    return value or None


def _parse_structured(identity: str, match: re.Match) -> IdentityInfo:
    fields = [field.strip() for field in match.group("details").split(";")]
    if len(fields) != _STRUCTURED_FIELD_COUNT:
        raise UserAgentError(
            f"Expected {_STRUCTURED_FIELD_COUNT} fields in identity string, got {len(fields)}: {identity!r}"
        )

    os, family_raw, app_version, language = (_clean(field) for field in fields)
    return IdentityInfo(
        os=os,
        os_family=os_family(family_raw or os),
        language=language,
        version=app_version or _clean(match.group("version")),
    )


def _parse_legacy(identity: str, language: str | None, version: str | None) -> IdentityInfo:
    match = _LEGACY_OS_RE.search(identity)
    os = _clean(match.group(1)) if match else None
    return IdentityInfo(
        os=os,
        os_family=os_family(os),
        language=_clean(language),
        version=_clean(version),
    )


def parse_user_agent(identity: str | None, language: str | None = None,
                     version: str | None = None) -> IdentityInfo | None:
    """
    Returns None when the identity string is not from a Deskflow client.
    Raises UserAgentError for a structured string that cannot be decomposed.
    """
    if not identity or APP_MARKER not in identity:
        return None

    match = _STRUCTURED_RE.match(identity)
    if match:
        return _parse_structured(identity, match)
    return _parse_legacy(identity, language, version)
