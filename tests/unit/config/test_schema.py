"""Config schema validation, merge and redaction tests."""

from __future__ import annotations

import pytest

from craftchain.config.schema import (
    ConfigValidationError,
    assert_valid_config,
    default_config,
    merge_config,
    migration_guidance,
    redact_config,
    validate_config,
)


def test_default_config_is_valid_and_isolated() -> None:
    first = default_config()
    first["activity"]["feed_limit"] = 1

    assert validate_config(default_config()).is_valid
    assert default_config()["activity"]["feed_limit"] == 20


def test_unknown_and_secret_looking_keys_are_rejected() -> None:
    config = merge_config(
        default_config(),
        {"storage": {"api_key": "abc"}, "paths": {"cache_dir": "x"}, "extra": {}},
    )

    result = validate_config(config)

    messages = {issue.path: issue.message for issue in result.issues}
    assert result.config is None
    assert messages["storage.api_key"] == "embedded secret values are forbidden in craftchain.toml"
    assert messages["paths.cache_dir"] == "unknown field"
    assert messages["extra"] == "unknown field"


def test_missing_sections_and_fields_are_reported() -> None:
    config = default_config()
    del config["storage"]["busy_retry_limit"]  # type: ignore[misc]

    with pytest.raises(ConfigValidationError) as excinfo:
        assert_valid_config({k: v for k, v in config.items() if k != "paths"})

    paths = [issue.path for issue in excinfo.value.issues]
    assert "paths" in paths
    assert "storage.busy_retry_limit" in paths


@pytest.mark.parametrize(
    ("overlay", "path"),
    [
        ({"storage": {"busy_timeout_ms": -1}}, "storage.busy_timeout_ms"),
        ({"storage": {"busy_retry_limit": True}}, "storage.busy_retry_limit"),
        ({"activity": {"feed_limit": 0}}, "activity.feed_limit"),
        ({"observability": {"log_format": "xml"}}, "observability.log_format"),
        ({"observability": {"redact_secrets": "yes"}}, "observability.redact_secrets"),
        ({"paths": {"state_db": "  "}}, "paths.state_db"),
        ({"meta": {"schema_version": 2}}, "meta.schema_version"),
    ],
)
def test_field_rules(overlay: dict[str, object], path: str) -> None:
    result = validate_config(merge_config(default_config(), overlay))

    assert [issue.path for issue in result.issues] == [path]


def test_migration_guidance_direction() -> None:
    assert "upgrade the craftchain package" in migration_guidance(5)
    assert "older" in migration_guidance(0)
    assert migration_guidance(1) == "schema version is current"


def test_redact_config_masks_only_sensitive_text() -> None:
    redacted = redact_config(
        {"observability": {"redact_secrets": True}, "custom": {"db_password": "hunter2"}}
    )

    assert redacted == {
        "custom": {"db_password": "<redacted>"},
        "observability": {"redact_secrets": True},
    }
    assert redact_config("nope") == {}
