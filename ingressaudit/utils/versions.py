import re

UNKNOWN = "unknown"

_SPLIT_RE = re.compile(r"[:@/]")
_NUMERIC_RE = re.compile(r"^[0-9.]+$")


def extract_version(image: str) -> str:
    """Return the first semver-like token of an image reference, or "unknown".

    ``registry.k8s.io/ingress-nginx/controller:v1.11.0@sha256:...`` -> ``v1.11.0``.
    A "v"-prefixed token wins over a bare ``X.Y.Z`` one; pre-release suffixes
    after the first "-" are dropped.
    """
    parts = [p for p in _SPLIT_RE.split(image or "") if p]
    for p in parts:
        if len(p) > 1 and p.startswith("v"):
            sub = p.split("-", 1)[0]
            if sub.count(".") >= 2:
                return sub
    for p in parts:
        sub = p.split("-", 1)[0]
        if sub.count(".") >= 2 and _NUMERIC_RE.match(sub):
            return sub
    return UNKNOWN


def chart_version(chart: str) -> str:
    # helm reports charts as "<name>-<version>", e.g. "ingress-nginx-4.14.3"
    tail = (chart or "").rsplit("-", 1)[-1]
    if tail.count(".") >= 2 and _NUMERIC_RE.match(tail):
        return tail
    return UNKNOWN


def image_registry(image: str) -> str:
    return (image or "").split("/")[0] or UNKNOWN


def image_digest(image: str) -> str:
    if "@" not in (image or ""):
        return ""
    return image.split("@", 1)[1]
