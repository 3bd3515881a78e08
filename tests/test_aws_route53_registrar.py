"""
Tests for the AWS Route 53 adapter. boto3 clients are replaced with
MagicMock objects; errors are raised as real botocore ClientErrors.

Run:
    python -m pytest tests/test_aws_route53_registrar.py -v
"""

import asyncio
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError

from src.registrars.aws_route53_registrar import AwsRoute53Registrar, translate_client_error
from src.registrars.exceptions import AuthenticationError, RateLimitError, ServerError
from src.registrars.models import DnsRecordModel, DomainRenewalRequest


def _run(coro):
    return asyncio.run(coro)


def _client_error(code: str, message: str = "error", status: int = 400, operation: str = "Operation") -> ClientError:
    return ClientError(
        {"Error": {"Code": code, "Message": message}, "ResponseMetadata": {"HTTPStatusCode": status}},
        operation
    )


@pytest.fixture
def aws():
    """Registrar wired to two mocked boto3 clients: (registrar, domains, route53)"""
    domains, route53 = MagicMock(), MagicMock()
    with patch("src.registrars.aws_route53_registrar.boto3.client", side_effect=[domains, route53]) as factory:
        registrar = AwsRoute53Registrar("AKIA", "secret", region="eu-west-1", retry_wait_min=0, retry_wait_max=0)

    assert factory.call_args_list[0].args == ("route53domains",)
    assert factory.call_args_list[0].kwargs["region_name"] == "us-east-1"
    assert factory.call_args_list[1].kwargs["region_name"] == "eu-west-1"
    return registrar, domains, route53


ZONE = {"HostedZones": [{"Id": "/hostedzone/Z123", "Name": "example.com."}]}


# ===========================================================================
# 1. Error translation
# ===========================================================================

class TestTranslateClientError:

    def test_known_codes(self):
        assert isinstance(translate_client_error(_client_error("AccessDeniedException")), AuthenticationError)
        assert isinstance(translate_client_error(_client_error("Throttling")), RateLimitError)

    def test_unknown_5xx_is_server_error(self):
        error = translate_client_error(_client_error("Weird", status=503))

        assert isinstance(error, ServerError)
        assert error.error_code == "Weird"
        assert error.status_code == 503


# ===========================================================================
# 2. Registration
# ===========================================================================

class TestAwsRegistration:

    def test_availability(self, aws):
        registrar, domains, _ = aws
        domains.check_domain_availability.return_value = {"Availability": "AVAILABLE"}

        result = _run(registrar.check_availability("Example.com"))

        assert result.success is True
        assert result.is_available is True
        domains.check_domain_availability.assert_called_once_with(DomainName="example.com")

    def test_unsupported_tld_is_not_an_error(self, aws):
        registrar, domains, _ = aws
        domains.check_domain_availability.side_effect = _client_error("UnsupportedTLD", "TLD not supported")

        result = _run(registrar.check_availability("example.zz"))

        assert result.success is True
        assert result.is_available is False
        assert result.is_tld_supported is False

    def test_read_is_retried_on_throttling(self, aws):
        registrar, domains, _ = aws
        domains.check_domain_availability.side_effect = [
            _client_error("ThrottlingException"),
            {"Availability": "UNAVAILABLE"},
        ]

        result = _run(registrar.check_availability("example.com"))

        assert result.is_available is False
        assert domains.check_domain_availability.call_count == 2

    def test_register_sends_contacts_and_runs_once(self, aws, registration_request):
        registrar, domains, _ = aws
        domains.register_domain.side_effect = _client_error("ServiceUnavailable", status=503)

        result = _run(registrar.register_domain(registration_request))

        assert result.success is False
        assert result.error_code == "ServiceUnavailable"
        assert domains.register_domain.call_count == 1
        kwargs = domains.register_domain.call_args.kwargs
        assert kwargs["DurationInYears"] == 2
        assert kwargs["RegistrantContact"]["Email"] == "jane@example.com"
        assert kwargs["TechContact"]["CountryCode"] == "US"
        assert kwargs["PrivacyProtectAdminContact"] is False

    def test_register_returns_operation_id(self, aws, registration_request):
        registrar, domains, _ = aws
        domains.register_domain.return_value = {"OperationId": "op-123"}

        result = _run(registrar.register_domain(registration_request))

        assert result.success is True
        assert result.order_id == "op-123"
        assert result.expiration_date is not None

    def test_renew_looks_up_expiry_year(self, aws):
        registrar, domains, _ = aws
        domains.get_domain_detail.return_value = {"ExpirationDate": datetime(2026, 3, 1, tzinfo=timezone.utc)}
        domains.renew_domain.return_value = {"OperationId": "op-renew"}

        result = _run(registrar.renew_domain(DomainRenewalRequest(domain_name="example.com", years=1)))

        assert result.success is True
        domains.renew_domain.assert_called_once_with(
            DomainName="example.com", DurationInYears=1, CurrentExpiryYear=2026
        )

    def test_renew_uses_given_expiry_year(self, aws):
        registrar, domains, _ = aws
        domains.renew_domain.return_value = {"OperationId": "op-renew"}

        _run(registrar.renew_domain(
            DomainRenewalRequest(domain_name="example.com", years=1, current_expiration_year=2030)
        ))

        domains.get_domain_detail.assert_not_called()

    def test_auto_renew_switches_operation(self, aws):
        registrar, domains, _ = aws

        result = _run(registrar.set_auto_renew("example.com", False))

        assert result.success is True
        domains.disable_domain_auto_renew.assert_called_once_with(DomainName="example.com")

    def test_registered_domains_follow_marker(self, aws):
        registrar, domains, _ = aws
        domains.list_domains.side_effect = [
            {"Domains": [{"DomainName": "a.com", "AutoRenew": True}], "NextPageMarker": "m1"},
            {"Domains": [{"DomainName": "b.com"}]},
        ]

        result = _run(registrar.get_registered_domains())

        assert [d.domain_name for d in result.domains] == ["a.com", "b.com"]
        assert domains.list_domains.call_args_list[1].kwargs == {"Marker": "m1"}


# ===========================================================================
# 3. DNS
# ===========================================================================

class TestAwsDns:

    RECORD_SETS = {
        "ResourceRecordSets": [
            {"Name": "example.com.", "Type": "A", "TTL": 300,
             "ResourceRecords": [{"Value": "1.2.3.4"}, {"Value": "5.6.7.8"}]},
            {"Name": "example.com.", "Type": "MX", "TTL": 3600,
             "ResourceRecords": [{"Value": "10 mx.example.com"}]},
        ],
        "IsTruncated": True,
        "NextRecordName": "www.example.com.",
        "NextRecordType": "TXT",
    }
    SECOND_PAGE = {
        "ResourceRecordSets": [
            {"Name": "www.example.com.", "Type": "TXT", "TTL": 600,
             "ResourceRecords": [{"Value": '"hello world"'}]},
        ],
        "IsTruncated": False,
    }

    def _zone(self, route53):
        route53.list_hosted_zones_by_name.return_value = ZONE
        route53.list_resource_record_sets.side_effect = [self.RECORD_SETS, self.SECOND_PAGE]

    def test_records_get_positional_ids(self, aws):
        registrar, _, route53 = aws
        self._zone(route53)

        result = _run(registrar.get_dns_zone("example.com"))

        records = result.zone.records
        assert [r.id for r in records] == [1, 2, 3, 4]
        assert records[2].priority == 10
        assert records[2].value == "mx.example.com"
        assert records[3].name == "www"
        assert records[3].value == "hello world"
        second_call = route53.list_resource_record_sets.call_args_list[1].kwargs
        assert second_call["StartRecordName"] == "www.example.com."

    def test_delete_one_value_upserts_remaining_set(self, aws):
        registrar, _, route53 = aws
        self._zone(route53)

        result = _run(registrar.delete_dns_record("example.com", 2))

        assert result.success is True
        batch = route53.change_resource_record_sets.call_args.kwargs["ChangeBatch"]
        assert batch["Changes"] == [{
            "Action": "UPSERT",
            "ResourceRecordSet": {
                "Name": "example.com.", "Type": "A", "TTL": 300, "ResourceRecords": [{"Value": "1.2.3.4"}]
            },
        }]

    def test_delete_last_value_deletes_set(self, aws):
        registrar, _, route53 = aws
        self._zone(route53)

        _run(registrar.delete_dns_record("example.com", 3))

        changes = route53.change_resource_record_sets.call_args.kwargs["ChangeBatch"]["Changes"]
        assert len(changes) == 1
        assert changes[0]["Action"] == "DELETE"
        assert changes[0]["ResourceRecordSet"]["ResourceRecords"] == [{"Value": "10 mx.example.com"}]

    def test_add_record_creates_set(self, aws):
        registrar, _, route53 = aws
        self._zone(route53)

        _run(registrar.add_dns_record("example.com", DnsRecordModel(name="api", type="CNAME", value="lb.example.net")))

        changes = route53.change_resource_record_sets.call_args.kwargs["ChangeBatch"]["Changes"]
        assert changes[0]["Action"] == "UPSERT"
        assert changes[0]["ResourceRecordSet"]["Name"] == "api.example.com."
        assert route53.change_resource_record_sets.call_args.kwargs["HostedZoneId"] == "/hostedzone/Z123"

    def test_unknown_record_id_fails_without_change(self, aws):
        registrar, _, route53 = aws
        self._zone(route53)

        result = _run(registrar.delete_dns_record("example.com", 99))

        assert result.success is False
        route53.change_resource_record_sets.assert_not_called()

    def test_missing_hosted_zone(self, aws):
        registrar, _, route53 = aws
        route53.list_hosted_zones_by_name.return_value = {"HostedZones": [{"Id": "/hostedzone/Z9", "Name": "other.com."}]}

        result = _run(registrar.get_dns_zone("example.com"))

        assert result.success is False
        assert result.error_code == "NoSuchHostedZone"


# ===========================================================================
# 4. Unexpected responses
# ===========================================================================

class TestAwsUnexpectedResponses:

    def test_response_of_wrong_shape_is_invalid_response(self, aws):
        registrar, domains, _ = aws
        domains.check_domain_availability.return_value = ["AVAILABLE"]

        result = _run(registrar.check_availability("example.com"))

        assert result.success is False
        assert result.error_code == "INVALID_RESPONSE"
        assert result.domain_name == "example.com"

    def test_service_unavailable_on_register_is_transport_failure(self, aws, registration_request):
        registrar, domains, _ = aws
        domains.register_domain.side_effect = _client_error("ServiceUnavailable", status=503)

        result = _run(registrar.register_domain(registration_request))

        assert result.success is False
        assert result.transport_failure is True
        assert domains.register_domain.call_count == 1
