"""Log sanitization for preventing secret leakage.

Identity endpoints and cloud SDKs sometimes echo request details back in
error messages. Everything that reaches a log line or an exception raised
by queuescaler passes through here first. Redacted values:
- Client secrets (form-encoded, JSON or environment style)
- Bearer tokens and access tokens
- Service-account private keys (PEM blocks and JSON fields)
- Storage account keys inside connection strings

Design Philosophy:
- Security first: err on side of over-redaction
- Pattern-based: not brittle keyword matching
"""

import re
from re import Pattern


class LogSanitizer:
    """Sanitize sensitive data from logs and error messages.

    All methods are class methods and can be called without instantiation.
    """

    REDACTED = "[REDACTED]"

    # Order matters: more specific patterns come first
    SECRET_PATTERNS: dict[str, Pattern] = {
        "client_secret_assignment": re.compile(
            r'(client[_-]?secret["\']?\s*[:=]\s*["\']?)([^\s"\'&,\)]+)',
            re.IGNORECASE,
        ),
        "client_secret_env": re.compile(
            r"(AZURE_CLIENT_SECRET[\"']?\s*[:=]\s*[\"']?)([^\s\"'&,\)]+)",
            re.IGNORECASE,
        ),
        "authorization_bearer": re.compile(r"(Authorization:\s*Bearer\s+)([^\s]+)", re.IGNORECASE),
        "bearer_value": re.compile(r"(Bearer\s+)([A-Za-z0-9\-\._~\+/]+=*)"),
        "access_token": re.compile(
            r'(access[_-]?token["\']?\s*[:=]\s*["\']?)([^\s"\'&,\)]+)',
            re.IGNORECASE,
        ),
        "private_key_field": re.compile(
            r'(private[_-]?key["\']?\s*[:=]\s*["\'])([^"\']+)',
            re.IGNORECASE,
        ),
        "account_key": re.compile(r"(AccountKey=)([^;\s]+)", re.IGNORECASE),
    }

    PEM_BLOCK: Pattern = re.compile(
        r"-----BEGIN [A-Z ]*PRIVATE KEY-----.*?-----END [A-Z ]*PRIVATE KEY-----",
        re.DOTALL,
    )

    @classmethod
    def sanitize(cls, message: str) -> str:
        """Sanitize message by redacting sensitive patterns.

        Args:
            message: The message to sanitize

        Returns:
            Sanitized message with secrets replaced by [REDACTED]

        Examples:
            >>> LogSanitizer.sanitize("client_secret=abc123")
            'client_secret=[REDACTED]'
            >>> LogSanitizer.sanitize("Authorization: Bearer eyJ0eXAi")
            'Authorization: Bearer [REDACTED]'
        """
        if not isinstance(message, str):
            message = str(message)

        result = cls.PEM_BLOCK.sub(cls.REDACTED, message)

        for pattern in cls.SECRET_PATTERNS.values():
            result = pattern.sub(r"\1" + cls.REDACTED, result)

        return result

    @classmethod
    def create_safe_error_message(cls, error: Exception, context: str = "") -> str:
        """Create error message with secrets sanitized.

        Args:
            error: The exception to sanitize
            context: Optional context string to prepend

        Returns:
            Sanitized error message

        Examples:
            >>> err = ValueError("Auth failed with client_secret=abc123")
            >>> LogSanitizer.create_safe_error_message(err, "Authentication")
            'Authentication: Auth failed with client_secret=[REDACTED]'
        """
        sanitized_msg = cls.sanitize(str(error))

        if context:
            return f"{context}: {sanitized_msg}"
        return sanitized_msg

    @classmethod
    def sanitize_exception(cls, exc: Exception) -> str:
        """Sanitize exception message, truncated for single-line logs."""
        message = cls.sanitize(str(exc))
        if len(message) > 300:
            message = message[:300] + "..."
        return message
