"""
Secure HTTP headers middleware.

Adds security-related headers to every response, error responses
included:
- X-Content-Type-Options
- X-Frame-Options
- Referrer-Policy
- Strict-Transport-Security
- Content-Security-Policy
- X-XSS-Protection

No business logic. Pure cross-cutting concern.
"""

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

HSTS_MAX_AGE_SECONDS = 31_536_000  # 1 year

CONTENT_SECURITY_POLICY = "; ".join(
    [
        "default-src 'self'",
        "script-src 'self' 'unsafe-inline'",
        "style-src 'self' 'unsafe-inline'",
        "img-src 'self' data: https:",
        "connect-src 'self' https://api.openai.com",
        "font-src 'self'",
        "object-src 'none'",
        "media-src 'self'",
        "frame-src 'none'",
    ]
)

SECURE_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Strict-Transport-Security": (
        f"max-age={HSTS_MAX_AGE_SECONDS}; includeSubDomains; preload"
    ),
    "Content-Security-Policy": CONTENT_SECURITY_POLICY,
    "X-XSS-Protection": "1; mode=block",
}


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Middleware that adds secure HTTP headers to every response.

    Must wrap the error-routing middleware so that rendered error
    responses carry the same headers.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        response = await call_next(request)
        for header_name, header_value in SECURE_HEADERS.items():
            response.headers.setdefault(header_name, header_value)
        return response
