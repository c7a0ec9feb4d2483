"""
Shared module package.

Contains cross-cutting concerns used across the server:
- Error taxonomy and error-to-HTTP handling
- Security middleware
- Rate limiting
- Logging configuration and request logging
"""
