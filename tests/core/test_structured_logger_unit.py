from core.error_handler import StructuredLogger


def test_credentials_and_identity_are_redacted():
    logger = StructuredLogger("orchestrator")

    sanitized = logger._sanitize_data(
        {
            "llm_api_key": "sk-placeholder",  # pragma: allowlist secret
            "email": "writer@example.test",
            "feature": "rephrase",
            "attempt": 2,
        }
    )

    assert sanitized["llm_api_key"] == "[REDACTED]"
    assert sanitized["email"] == "[REDACTED]"
    assert sanitized["feature"] == "rephrase"
    assert sanitized["attempt"] == 2


def test_manuscript_text_is_never_logged():
    logger = StructuredLogger("orchestrator")

    sanitized = logger._sanitize_data(
        {
            "user_prompt": "<originalText>secret draft</originalText>",
            "content": "chapter text",
            "text_to_rephrase": ["paragraph"],
            "model": "primary-json",
            "records": 3,
        }
    )

    assert sanitized["user_prompt"] == "[REDACTED]"
    assert sanitized["content"] == "[REDACTED]"
    assert sanitized["text_to_rephrase"] == "[REDACTED]"
    assert sanitized["model"] == "primary-json"
    assert sanitized["records"] == 3


def test_forwarded_bearer_header_is_redacted():
    logger = StructuredLogger("api")

    redacted = logger._redact_header_like(
        {"name": "Authorization", "value": "Bearer placeholder"}
    )

    assert redacted == {"name": "Authorization", "value": "[REDACTED]"}


def test_non_sensitive_header_is_left_alone():
    logger = StructuredLogger("api")
    assert logger._redact_header_like({"name": "Accept", "value": "text/event-stream"}) is None


def test_nested_values_are_sanitized():
    logger = StructuredLogger("api")
    sanitized = logger._sanitize_data({"outer": [{"api_key": "x", "ok": 1}]})
    assert sanitized["outer"] == [{"api_key": "[REDACTED]", "ok": 1}]
