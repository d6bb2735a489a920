"""Stable failure codes for guard, fetch and pipeline operations.

Used by: url_guard, fetcher, pipeline, main exception handlers, jobs/fetch_page.
Clients branch on these values, so never rename one.
"""

INVALID_INPUT = "INVALID_INPUT"                        # url field missing or not a string
MALFORMED_URL = "MALFORMED_URL"                        # unparsable
FORBIDDEN_URL = "FORBIDDEN_URL"                        # scheme or host blocked by the guard
PRIVATE_NETWORK = "PRIVATE_NETWORK"                    # SSRF rejection
TIMEOUT = "TIMEOUT"                                    # deadline exceeded
NOT_FOUND = "NOT_FOUND"                                # host resolution failure
UNSUPPORTED_CONTENT_TYPE = "UNSUPPORTED_CONTENT_TYPE"  # non-HTML body
FETCH_ERROR = "FETCH_ERROR"                            # any other transport failure

INTERNAL_ERROR = "INTERNAL_ERROR"


HTTP_STATUS = {
    INVALID_INPUT: 400,
    MALFORMED_URL: 400,
    FORBIDDEN_URL: 403,
    PRIVATE_NETWORK: 403,
    NOT_FOUND: 404,
    TIMEOUT: 408,
    UNSUPPORTED_CONTENT_TYPE: 500,
    FETCH_ERROR: 500,
    INTERNAL_ERROR: 500,
}

ERROR_TITLES = {
    INVALID_INPUT: "Invalid URL provided",
    MALFORMED_URL: "Malformed URL",
    FORBIDDEN_URL: "URL not allowed",
    PRIVATE_NETWORK: "Access to private networks not allowed",
    NOT_FOUND: "Failed to fetch content",
    TIMEOUT: "Failed to fetch content",
    UNSUPPORTED_CONTENT_TYPE: "Failed to fetch content",
    FETCH_ERROR: "Failed to fetch content",
    INTERNAL_ERROR: "Internal server error",
}


def status_for(code: str) -> int:
    """HTTP-equivalent status for a failure code (unknown codes are 500)."""
    return HTTP_STATUS.get(code, 500)
