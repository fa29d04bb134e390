"""SSRF-safe resolution and heuristic scoring of submitted proof links.

Every hop is validated before any request is made: the scheme must be http(s),
the host must not be a local name, literal IPs must be public, and every DNS
answer for a name must be public. Probes connect to a vetted address rather than
resolving the name again. Any failure rejects the link outright with a
code, no partial score is returned.
"""

from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import dataclass, field
import ipaddress
import logging
import socket
from urllib.parse import urljoin, urlsplit

import httpx

from career_quest.core.config import settings
from career_quest.core.errors import LinkRejectedError
from career_quest.services.outbound import send_with_deadline
from career_quest.services.scoring import ProofScore, clamp_score, label_for, signal, unique_tips

logger = logging.getLogger(__name__)

ALLOWED_SCHEMES = {"http", "https"}
BLOCKED_HOST_SUFFIXES = (".localhost", ".local", ".internal")
CARRIER_GRADE_NAT = ipaddress.ip_network("100.64.0.0/10")
REDIRECT_STATUSES = {301, 302, 303, 307, 308}
URL_SHORTENERS = {"bit.ly", "tinyurl.com", "t.co", "cutt.ly", "shorturl.at", "rb.gy"}
SMALL_PAYLOAD_BYTES = 600
MAX_LINK_TIPS = 8
PROBE_HEADERS = {"User-Agent": "CareerQuestProofVerifier/1.0"}

# (host fragment, bonus, tip)
COLLABORATION_HOSTS = [
    ("docs.google.com", 8, "Google: set sharing to 'Anyone with the link can view' (read only)."),
    ("drive.google.com", 8, "Google: set sharing to 'Anyone with the link can view' (read only)."),
    ("notion.so", 8, "Notion: share the page publicly and allow read access."),
    ("notion.site", 8, "Notion: share the page publicly and allow read access."),
    ("linkedin.com", 6, "LinkedIn: make sure the post or profile is public, not only visible to connections."),
    ("github.com", 8, "GitHub: include a README with steps and the result (screenshots if possible)."),
]

_resolver_pool = ThreadPoolExecutor(max_workers=8, thread_name_prefix="link-dns")


@dataclass
class ProbeResult:
    status: int | None
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def location(self) -> str:
        return (self.headers.get("location") or "").strip()

    @property
    def content_type(self) -> str:
        return (self.headers.get("content-type") or "").strip().lower()

    @property
    def content_length(self) -> int | None:
        raw = (self.headers.get("content-length") or "").strip()
        try:
            return int(raw)
        except ValueError:
            return None


def is_blocked_ip(value: str) -> bool:
    try:
        ip = ipaddress.ip_address(value.split("%", 1)[0])
    except ValueError:
        return True
    if ip.version == 6 and ip.ipv4_mapped is not None:
        ip = ip.ipv4_mapped
    if ip.version == 4 and ip in CARRIER_GRADE_NAT:
        return True
    return (
        ip.is_private
        or ip.is_loopback
        or ip.is_link_local
        or ip.is_multicast
        or ip.is_unspecified
        or ip.is_reserved
    )


def _is_ip_literal(host: str) -> bool:
    try:
        ipaddress.ip_address(host)
    except ValueError:
        return False
    return True


def _getaddrinfo_addresses(host: str) -> list[str]:
    infos = socket.getaddrinfo(host, None, proto=socket.IPPROTO_TCP)
    return sorted({str(info[4][0]) for info in infos})


def resolve_host(host: str, timeout: float) -> list[str]:
    """Resolves every address for `host`; raises OSError or TimeoutError on failure."""
    future = _resolver_pool.submit(_getaddrinfo_addresses, host)
    try:
        return future.result(timeout=timeout)
    except FutureTimeout as exc:
        future.cancel()
        raise TimeoutError(f"DNS resolution timed out for {host}") from exc


def _pinned_target(url: str, address: str | None) -> tuple[str, dict[str, str], dict[str, str]]:
    """Rewrites `url` to connect to the validated `address`, keeping Host and TLS SNI."""
    parts = urlsplit(url)
    host = parts.hostname or ""
    headers = dict(PROBE_HEADERS)
    if not address or _is_ip_literal(host):
        return url, headers, {}
    ip_host = f"[{address}]" if ipaddress.ip_address(address).version == 6 else address
    port = f":{parts.port}" if parts.port else ""
    headers["Host"] = f"{host}{port}"
    extensions = {"sni_hostname": host} if parts.scheme.lower() == "https" else {}
    return parts._replace(netloc=f"{ip_host}{port}").geturl(), headers, extensions


def probe_url(url: str, timeout: float, address: str | None = None) -> ProbeResult:
    """Issues a HEAD request without following redirects, bounded by `timeout` in total.

    When `address` is given the connection goes to that IP. Transport failures
    and deadline overruns are reported as a missing status, not raised.
    """
    target, headers, extensions = _pinned_target(url, address)
    try:
        response = send_with_deadline("HEAD", target, timeout=timeout, headers=headers, extensions=extensions)
    except httpx.HTTPError as exc:
        logger.warning("Link probe failed for %s: %s", url, exc)
        return ProbeResult(status=None)
    return ProbeResult(
        status=response.status_code,
        headers={key.lower(): value for key, value in response.headers.items()},
    )


def validate_url(raw_url: str) -> tuple[str, str | None]:
    """Returns the URL to fetch and the vetted address to connect to.

    Raises LinkRejectedError with the blocking code.
    """
    try:
        parts = urlsplit((raw_url or "").strip())
        host = (parts.hostname or "").strip().rstrip(".").lower()
        parts.port  # raises ValueError on a malformed port
    except ValueError as exc:
        raise LinkRejectedError("INVALID_URL") from exc

    if not parts.scheme:
        raise LinkRejectedError("INVALID_URL")
    if parts.scheme.lower() not in ALLOWED_SCHEMES:
        raise LinkRejectedError("INVALID_PROTOCOL")
    if not host:
        raise LinkRejectedError("INVALID_HOST")
    if host == "localhost" or host.endswith(BLOCKED_HOST_SUFFIXES):
        raise LinkRejectedError("BLOCKED_HOST")

    if _is_ip_literal(host):
        if is_blocked_ip(host):
            raise LinkRejectedError("BLOCKED_IP")
        return parts.geturl(), None

    try:
        addresses = resolve_host(host, settings.link_probe_timeout_seconds)
    except (OSError, TimeoutError, UnicodeError) as exc:
        logger.info("DNS resolution failed for %s: %s", host, exc)
        raise LinkRejectedError("DNS_FAILED") from exc
    if not addresses:
        raise LinkRejectedError("DNS_NOT_FOUND")
    if any(is_blocked_ip(address) for address in addresses):
        raise LinkRejectedError("BLOCKED_DNS_IP")
    # The probe connects to this address, never to a fresh lookup of the name.
    return parts.geturl(), addresses[0]


def follow_safe_redirects(start_url: str, max_redirects: int) -> tuple[str, ProbeResult, list[dict]]:
    current = start_url
    chain: list[dict] = []
    for hop in range(max_redirects + 1):
        try:
            checked, address = validate_url(current)
        except LinkRejectedError as exc:
            exc.chain = chain
            raise
        result = probe_url(checked, settings.link_probe_timeout_seconds, address)
        chain.append({"url": checked, "status": result.status, "location": result.location})
        if result.status in REDIRECT_STATUSES and result.location:
            if hop == max_redirects:
                break
            current = urljoin(checked, result.location)
            continue
        return checked, result, chain
    raise LinkRejectedError("TOO_MANY_REDIRECTS", chain=chain)


def score_link(url: str) -> ProofScore:
    final_url, head, chain = follow_safe_redirects(url, settings.link_max_redirects)

    parts = urlsplit(final_url)
    host = (parts.hostname or "").lower()
    status = head.status
    content_type = head.content_type
    content_length = head.content_length

    score = 50
    tips: list[str] = []

    if parts.scheme.lower() == "https":
        score += 5
    else:
        tips.append("Use an https link if possible.")

    if host in URL_SHORTENERS:
        score -= 25
        tips.append("Avoid shortened links. Paste the original link instead.")

    if not status or status >= 400:
        score -= 40
        tips.append("The link looks unreachable (HTTP status). Check that it is public.")

    if "text/html" in content_type or "application/pdf" in content_type:
        score += 10
    elif content_type:
        score -= 5
        tips.append("Unusual content type. Prefer a page (Notion, Google Doc, LinkedIn) or a public PDF.")

    if content_length is not None and 0 < content_length < SMALL_PAYLOAD_BYTES:
        score -= 10
        tips.append("The content looks very thin. Add more detail (result, date, screenshots).")

    for fragment, bonus, tip in COLLABORATION_HOSTS:
        if fragment in host:
            score += bonus
            tips.append(tip)
            break

    score = clamp_score(score)
    return ProofScore(
        score=score,
        label=label_for(score),
        tips=unique_tips(tips, MAX_LINK_TIPS),
        signals=[
            signal("status", "HTTP Status", status or ""),
            signal("contentType", "Content-Type", content_type or "-"),
            signal("finalHost", "Host", host or "-"),
        ],
        meta={
            "final_url": final_url,
            "status": status,
            "content_type": content_type,
            "content_length": content_length,
            "redirects": chain,
        },
    )
