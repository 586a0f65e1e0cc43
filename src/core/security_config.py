"""Redaction and error-exposure rules shared by logging and error handling."""

# Substrings that mark a log field as sensitive. Manuscript text counts as
# private: log sizes and counts, never the words.
SENSITIVE_KEYS: frozenset[str] = frozenset(
    {
        # Credentials
        "password",
        "secret",
        "token",
        "authorization",
        "authentication",
        "auth",
        "bearer",
        "jwt",
        "key",
        "cookie",
        "session_id",
        # Personal data
        "email",
        "phone",
        "address",
        # Manuscript text and anything derived from it
        "prompt",
        "content",
        "paragraph",
        "text_to_rephrase",
        "text_before",
        "text_after",
        "original_text",
        "new_text",
        "custom_instructions",
    }
)

# `code` is the stable AI error code (model_error, exhausted, ...)
PRODUCTION_ERROR_FIELDS: frozenset[str] = frozenset({"correlation_id", "type", "code"})

DEVELOPMENT_ERROR_FIELDS: frozenset[str] = PRODUCTION_ERROR_FIELDS | {
    "details",
    "traceback",
    "exception_type",
    "validation_errors",
}


def get_allowed_error_fields(environment: str) -> frozenset[str]:
    """Error-body fields a client may see in `environment`."""
    if environment == "production":
        return PRODUCTION_ERROR_FIELDS
    return DEVELOPMENT_ERROR_FIELDS


def is_sensitive_key(key: str) -> bool:
    key_lower = key.lower()
    return any(sensitive in key_lower for sensitive in SENSITIVE_KEYS)
