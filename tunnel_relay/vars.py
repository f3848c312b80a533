import os

SERVICE_NAME = os.getenv("SERVICE_NAME", "tunnel-relay")

# Base URL of the local service that relayed requests are redirected to
RELAY_BACKEND_URL = os.environ.get("RELAY_BACKEND_URL", "http://localhost:8080")
# Empty means no timeout, a hung backend hangs only its own request
BACKEND_TIMEOUT = os.environ.get("BACKEND_TIMEOUT", "")
BACKEND_VERIFY_SSL = os.getenv("BACKEND_VERIFY_SSL", "false").lower() == "true"

RELAY_HISTORY_PATH = os.environ.get("RELAY_HISTORY_PATH", "/_relay").strip("/")
RELAY_HISTORY_PATH = f"/{RELAY_HISTORY_PATH}" if RELAY_HISTORY_PATH else ""
# Served under the history prefix so only that one segment is reserved
METRICS_PATH = f"{RELAY_HISTORY_PATH}/metrics"

OTLP_ENDPOINT = os.getenv("OTLP_ENDPOINT")
OTLP_HEADERS = os.getenv("OTLP_HEADERS", "")


def _parse_header_assignments(raw: str) -> list[tuple[str, str]]:
    headers: list[tuple[str, str]] = []
    if not raw:
        return headers
    for entry in raw.split(","):
        entry = entry.strip()
        if not entry:
            continue
        if "=" in entry:
            name, value = entry.split("=", 1)
            name = name.strip()
            value = value.strip()
            if name:
                headers.append((name, value))
    return headers


def _parse_timeout(raw: str) -> float | None:
    raw = raw.strip()
    if not raw:
        return None
    return float(raw)


RELAY_ADD_HEADERS = _parse_header_assignments(os.getenv("RELAY_ADD_HEADERS", ""))
RELAY_REMOVE_HEADERS = [
    h.strip() for h in os.getenv("RELAY_REMOVE_HEADERS", "").split(",") if h.strip()
]
BACKEND_TIMEOUT_SECONDS = _parse_timeout(BACKEND_TIMEOUT)
