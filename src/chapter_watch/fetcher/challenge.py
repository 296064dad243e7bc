"""Tell real pages apart from anti-automation challenge interstitials.

Everything here is a pure function of the response status, headers and
(optionally) body text, so it can be exercised against canned fixtures.
"""

from collections.abc import Mapping
from enum import Enum

from pydantic import BaseModel, Field

from chapter_watch.fetcher.base import HttpResponse

CHALLENGE_STATUSES = frozenset({403, 429})

# Tokens looked for in the Server header
VENDOR_SERVER_TOKENS = ("cloudflare", "ddos-guard", "ddos", "sucuri")

# Headers only set by anti-bot vendors or their edge proxies
VENDOR_HEADERS = (
    "cf-ray",
    "cf-mitigated",
    "cf-chl-bypass",
    "x-sucuri-id",
    "x-datadome",
)

# Lowercase, compared against casefolded body text
BODY_MARKERS = (
    "challenges.cloudflare.com",
    "cf-chl-",
    "please verify you are human",
    "verify you are human",
    "confirm you are human",
    "checking your browser before accessing",
    "checking your browser",
    "just a moment",
    "ddos-guard",
    "bestätigen sie, dass sie ein mensch sind",
    "überprüfen, ob sie ein mensch sind",
    "bitte warten sie, während wir ihren browser überprüfen",
)


class VerdictKind(str, Enum):
    PAGE = "page"
    CHALLENGE = "challenge"
    NETWORK_ERROR = "network_error"


class Verdict(BaseModel):
    """Classification of one response, with the signals that produced it."""

    kind: VerdictKind
    reasons: list[str] = Field(default_factory=list)

    @property
    def is_challenge(self) -> bool:
        return self.kind is VerdictKind.CHALLENGE


def _lower_keys(headers: Mapping[str, str]) -> dict[str, str]:
    return {k.lower(): v for k, v in headers.items()}


def vendor_signature(headers: Mapping[str, str]) -> list[str]:
    """Return the anti-bot vendor signals present in response headers."""
    lowered = _lower_keys(headers)
    found = []
    server = lowered.get("server", "").lower()
    for token in VENDOR_SERVER_TOKENS:
        if token in server:
            found.append(f"server:{token}")
            break
    for name in VENDOR_HEADERS:
        if name in lowered:
            found.append(f"header:{name}")
    return found


def body_markers(body: str | None) -> list[str]:
    """Return the challenge-page phrases found in ``body``."""
    if not body:
        return []
    folded = body.casefold()
    return [marker for marker in BODY_MARKERS if marker in folded]


def classify(
    status_code: int,
    headers: Mapping[str, str],
    body: str | None = None,
) -> Verdict:
    """Classify a response as a genuine page or a challenge.

    Vendor headers are only taken as a challenge signal on error statuses;
    on a 2xx they merely name the CDN in front of the site.
    """
    reasons: list[str] = []
    if status_code in CHALLENGE_STATUSES:
        reasons.append(f"status:{status_code}")
    if status_code >= 400:
        reasons.extend(vendor_signature(headers))
    reasons.extend(f"body:{m}" for m in body_markers(body))

    if reasons:
        return Verdict(kind=VerdictKind.CHALLENGE, reasons=reasons)
    return Verdict(kind=VerdictKind.PAGE)


def classify_response(response: HttpResponse) -> Verdict:
    """Classify an :class:`HttpResponse`, reporting transport errors as such."""
    if response.error:
        return Verdict(kind=VerdictKind.NETWORK_ERROR, reasons=[response.error])
    return classify(response.status_code, response.headers, response.text)
