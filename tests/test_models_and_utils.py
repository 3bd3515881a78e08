"""
Tests for the shared domain model, validators, helpers and settings.

Run:
    python -m pytest tests/test_models_and_utils.py -v
"""

import pytest
from datetime import datetime, timezone
from decimal import Decimal

from src.registrars.base_registrar import (
    add_years,
    append_record,
    filter_tlds,
    number_records,
    parse_datetime,
    remove_record,
    replace_record,
    require_domain,
)
from src.registrars.exceptions import DomainNotFoundError
from src.registrars.models import (
    DnsRecordModel,
    DomainAvailabilityResult,
    DomainRegistrationRequest,
    DomainTransferRequest,
    RegistrarResult,
    TldInfo,
    normalize_status,
)
from src.utils.validators import (
    DomainValidator,
    ValidationError,
    parse_tld_list,
    validate_domain,
    validate_email,
    validate_phone,
)


# ===========================================================================
# 1. Requests and contacts
# ===========================================================================

class TestContactDefaulting:

    def test_missing_roles_default_to_registrant(self, contact):
        request = DomainRegistrationRequest(domain_name="example.com", registrant_contact=contact)

        assert request.admin_contact == contact
        assert request.tech_contact == contact
        assert request.billing_contact == contact

    def test_explicit_role_contact_is_kept(self, contact):
        admin = contact.model_copy(update={"first_name": "John", "email": "john@example.com"})
        request = DomainRegistrationRequest(
            domain_name="example.com",
            registrant_contact=contact,
            admin_contact=admin,
        )

        assert request.admin_contact.first_name == "John"
        assert request.tech_contact == contact
        assert set(request.role_contacts()) == {"registrant", "admin", "tech", "billing"}

    def test_transfer_without_contacts_has_no_roles(self):
        request = DomainTransferRequest(domain_name="example.com", auth_code="EPP-123")

        assert request.admin_contact is None
        assert request.role_contacts() == {}

    def test_country_is_upper_cased(self, contact):
        assert contact.country == "US"
        assert contact.full_name == "Jane Doe"

    def test_contact_phone_and_email_are_normalised(self, contact):
        data = contact.model_dump()
        data.update(email=" Jane@Example.COM ", phone="+44 20 7946 0958")
        cleaned = type(contact)(**data)

        assert cleaned.email == "jane@example.com"
        assert cleaned.phone == "+44.2079460958"

    def test_contact_with_bad_phone_rejected(self, contact):
        data = contact.model_dump()
        data["phone"] = "555-1234"
        with pytest.raises(ValueError):
            type(contact)(**data)

    def test_years_out_of_range_rejected(self, contact):
        with pytest.raises(ValueError):
            DomainRegistrationRequest(domain_name="example.com", years=11, registrant_contact=contact)


# ===========================================================================
# 2. Result envelope
# ===========================================================================

class TestResultEnvelope:

    def test_failure_without_errors_gets_message(self):
        result = RegistrarResult(success=False, message="Boom")
        assert result.errors == ["Boom"]

    def test_failure_without_message_still_has_error(self):
        result = DomainAvailabilityResult(success=False)
        assert result.errors == ["Unknown error"]

    def test_success_with_errors_is_rejected(self):
        with pytest.raises(ValueError):
            RegistrarResult(success=True, errors=["should not be here"])

    def test_success_has_no_errors(self):
        result = DomainAvailabilityResult(success=True, domain_name="example.com", is_available=True)
        assert result.errors == []


class TestNormalizeStatus:

    @pytest.mark.parametrize("raw, expected", [
        ("ACTIVE", "ACTIVE"),
        ("ok", "ACTIVE"),
        ("clientTransferProhibited", "ACTIVE"),
        ("pendingTransfer", "PENDING_TRANSFER"),
        ("redemptionPeriod", "REDEMPTION"),
        ("Expired", "EXPIRED"),
        ("clientHold", "SUSPENDED"),
        ("cancelled", "CANCELLED"),
        (None, "UNKNOWN"),
        ("something-odd", "UNKNOWN"),
    ])
    def test_vendor_strings_map_to_canonical(self, raw, expected):
        assert normalize_status(raw) == expected


# ===========================================================================
# 3. Shared helpers
# ===========================================================================

class TestFilterTlds:

    TLDS = [TldInfo(name="com"), TldInfo(name="net"), TldInfo(name=".ORG")]

    def test_none_returns_everything(self):
        assert [t.name for t in filter_tlds(self.TLDS, None)] == ["com", "net", "org"]

    def test_empty_returns_everything(self):
        assert len(filter_tlds(self.TLDS, [])) == 3

    def test_subset_ignores_case_and_dots(self):
        result = filter_tlds(self.TLDS, [".COM", "org", "io"])
        assert [t.name for t in result] == ["com", "org"]


class TestRecordEdits:

    RECORDS = [
        DnsRecordModel(name="@", type="A", value="1.2.3.4"),
        DnsRecordModel(name="www", type="CNAME", value="example.com"),
    ]

    def test_number_records_assigns_positions(self):
        numbered = number_records(self.RECORDS)
        assert [r.id for r in numbered] == [1, 2]

    def test_append_drops_incoming_id(self):
        new = DnsRecordModel(id=99, name="mail", type="mx", value="mx.example.com", priority=10)
        records = append_record(new)(number_records(self.RECORDS))

        assert len(records) == 3
        assert records[-1].id is None
        assert records[-1].type == "MX"

    def test_replace_matches_id_as_string(self):
        updated = DnsRecordModel(id="1", name="@", type="A", value="5.6.7.8")
        records = replace_record(updated)(number_records(self.RECORDS))
        assert records[0].value == "5.6.7.8"

    def test_replace_unknown_id_raises(self):
        with pytest.raises(DomainNotFoundError):
            replace_record(DnsRecordModel(id=7, name="@", type="A", value="5.6.7.8"))(number_records(self.RECORDS))

    def test_remove_unknown_id_raises(self):
        with pytest.raises(DomainNotFoundError):
            remove_record(42)(number_records(self.RECORDS))

    def test_remove_drops_record(self):
        records = remove_record(2)(number_records(self.RECORDS))
        assert [r.type for r in records] == ["A"]


class TestParsing:

    def test_parse_datetime_formats(self):
        assert parse_datetime("2025-01-02T03:04:05Z") == datetime(2025, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        assert parse_datetime("2025-01-02") == datetime(2025, 1, 2, tzinfo=timezone.utc)
        assert parse_datetime("01/31/2025") == datetime(2025, 1, 31, tzinfo=timezone.utc)
        assert parse_datetime("") is None
        assert parse_datetime("not a date") is None

    def test_add_years_clamps_leap_day(self):
        leap = datetime(2024, 2, 29, tzinfo=timezone.utc)
        assert add_years(leap, 1) == datetime(2025, 2, 28, tzinfo=timezone.utc)
        assert add_years(leap, 4) == leap.replace(year=2028)

    def test_require_domain_cleans_and_rejects_empty(self):
        assert require_domain("  HTTPS://Example.COM. ") == "example.com"
        with pytest.raises(ValueError):
            require_domain("")
        with pytest.raises(ValueError):
            require_domain(None)


# ===========================================================================
# 4. Validators
# ===========================================================================

class TestValidators:

    def test_validate_domain(self):
        assert validate_domain("EXAMPLE.COM") == "example.com"
        assert validate_domain("my-app.co.uk") == "my-app.co.uk"
        with pytest.raises(ValidationError):
            validate_domain("invalid domain with spaces")
        with pytest.raises(ValidationError):
            validate_domain("nodot")

    def test_validation_error_is_value_error(self):
        with pytest.raises(ValueError):
            validate_domain("")

    def test_split_domain(self):
        assert DomainValidator.split_domain("example.co.uk") == ("example", "co.uk")
        assert DomainValidator.extract_tld("example.co.uk") == "uk"
        assert DomainValidator.extract_sld("example.com") == "example"

    def test_validate_email(self):
        assert validate_email(" Test@Example.com ") == "test@example.com"
        with pytest.raises(ValidationError):
            validate_email("invalid-email")

    def test_validate_phone(self):
        assert validate_phone("+1.5551234567") == "+1.5551234567"
        assert validate_phone("+1 (555) 123-4567") == "+1.5551234567"
        assert validate_phone("+44 20 7946 0958") == "+44.2079460958"
        with pytest.raises(ValidationError):
            validate_phone("555-1234")

    def test_parse_tld_list(self):
        assert parse_tld_list(".COM, net,,org ") == ["com", "net", "org"]
        assert parse_tld_list(["IO"]) == ["io"]
        assert parse_tld_list(None) == []


# ===========================================================================
# 5. Settings
# ===========================================================================

class TestSettings:

    def test_defaults_are_safe(self, settings):
        assert settings.registrar_provider == "SANDBOX"
        assert settings.sandbox_mode is True
        assert settings.is_production() is False
        assert settings.renewal_window_days == 30

    def test_provider_is_upper_cased(self, monkeypatch):
        from src.utils.config import Settings

        monkeypatch.setenv("REGISTRAR_PROVIDER", "namecheap")
        monkeypatch.setenv("SANDBOX_MODE", "false")
        monkeypatch.setenv("NAMECHEAP_SANDBOX", "false")
        config = Settings(_env_file=None)

        assert config.registrar_provider == "NAMECHEAP"
        assert config.is_production() is True

    def test_invalid_log_level_rejected(self, monkeypatch):
        from src.utils.config import Settings

        monkeypatch.setenv("LOG_LEVEL", "chatty")
        with pytest.raises(ValueError):
            Settings(_env_file=None)

    def test_opensrs_tld_list(self, monkeypatch):
        from src.utils.config import Settings

        monkeypatch.setenv("OPENSRS_TLDS", ".COM, net ,io")
        assert Settings(_env_file=None).opensrs_tld_list == ["com", "net", "io"]

    def test_sandbox_mode_is_never_production(self, monkeypatch):
        from src.utils.config import Settings

        monkeypatch.setenv("REGISTRAR_PROVIDER", "AWS")
        monkeypatch.setenv("SANDBOX_MODE", "true")
        assert Settings(_env_file=None).is_production() is False

    def test_get_settings_is_singleton(self, settings):
        from src.utils.config import get_settings

        assert get_settings() is get_settings()

    def test_price_fields_are_decimals(self):
        tld = TldInfo(name="com", registration_price="9.99")
        assert tld.registration_price == Decimal("9.99")


# ===========================================================================
# 6. Logging
# ===========================================================================

class TestLogger:

    def test_handlers_attached_once_and_file_is_daily(self, monkeypatch, tmp_path):
        from src.utils import logger as logger_module

        monkeypatch.setattr(logger_module, "LOGS_DIR", tmp_path)
        first = logger_module.get_logger("src.tests.logger_once")
        second = logger_module.get_logger("src.tests.logger_once")

        assert first is second
        assert len(first.handlers) == 2
        assert list(tmp_path.glob("registrar_*.log"))

    def test_set_log_level_retunes_console_only(self, monkeypatch, tmp_path):
        import logging
        from src.utils import logger as logger_module

        monkeypatch.setattr(logger_module, "LOGS_DIR", tmp_path)
        log = logger_module.get_logger("src.tests.logger_level", log_file="levels.log")
        logger_module.set_log_level("warning")

        assert log.level == logging.WARNING
        levels = {type(h): h.level for h in log.handlers}
        assert levels[logging.FileHandler] == logging.DEBUG
        assert logging.WARNING in levels.values()

    def test_unknown_level_rejected(self):
        from src.utils.logger import set_log_level

        with pytest.raises(ValueError):
            set_log_level("chatty")
