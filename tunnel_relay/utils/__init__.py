SENSITIVE_HEADERS = {
    "authorization",
    "proxy-authorization",
    "cookie",
    "set-cookie",
    "x-api-key",
    "servicebusauthorization",
}


def mask_value(value: str) -> str:
    return f"{value[:4]}****" if value else value


def mask_headers(headers: list[tuple[str, str]]) -> list[tuple[str, str]]:
    """Hide credential-bearing header values before they reach the logs."""
    return [
        (name, mask_value(value) if name.lower() in SENSITIVE_HEADERS else value)
        for name, value in headers
    ]
