import pytest

from workload_dns.aliases import aliases_from_json, existing_record, same_dns_name, validate_aliases
from workload_dns.errors import ConflictError, FatalError, UnrecognizedDomainError
from workload_dns.zones import Unrecognized

OUR_DNS = 'myapp-Publi-1234.us-west-2.elb.amazonaws.com'
OLD_DNS = 'myapp-Publi-5678.us-west-2.elb.amazonaws.com'
OTHER_DNS = 'other-Publi-9999.us-west-2.elb.amazonaws.com'


def a_record(name, dns_name):
    return {
        'Name': name + '.',
        'Type': 'A',
        'AliasTarget': {'HostedZoneId': 'Z1H1FL5HABSF5', 'DNSName': dns_name + '.', 'EvaluateTargetHealth': True},
    }


def records(*record_sets):
    return {'ResourceRecordSets': list(record_sets)}


def test_same_dns_name():
    assert same_dns_name('Foo.Example.com.', 'foo.example.com')
    assert not same_dns_name('foo.example.com', 'bar.example.com')
    assert not same_dns_name(None, 'foo.example.com')
    assert not same_dns_name('foo.example.com', '')


def test_existing_record_ignores_later_names(resolver, aws):
    aws.route53.list_resource_record_sets.return_value = records(a_record('zzz.test.myapp.example.com', OTHER_DNS))

    zone = resolver.resolve('api.test.myapp.example.com')
    assert existing_record(zone, 'api.test.myapp.example.com', record_type='A') is None

    aws.route53.list_resource_record_sets.assert_called_once_with(
        HostedZoneId='ZENV', StartRecordName='api.test.myapp.example.com', MaxItems='1', StartRecordType='A'
    )


def test_free_alias(resolver, aws):
    validate_aliases(resolver, ['api.test.myapp.example.com'], OUR_DNS)


def test_alias_in_use_by_another_service(resolver, aws):
    aws.app_route53.list_resource_record_sets.return_value = records(a_record('www.myapp.example.com', OTHER_DNS))

    with pytest.raises(ConflictError, match='Alias www.myapp.example.com is already in use by ' + OTHER_DNS):
        validate_aliases(resolver, ['www.myapp.example.com'], OUR_DNS)


def test_alias_already_ours(resolver, aws):
    aws.app_route53.list_resource_record_sets.return_value = records(a_record('www.myapp.example.com', OUR_DNS.upper()))

    validate_aliases(resolver, ['www.myapp.example.com'], OUR_DNS)

    aws.app_route53.change_resource_record_sets.assert_not_called()


def test_alias_pointing_at_previous_dns(resolver, aws):
    aws.route53.list_resource_record_sets.return_value = records(a_record('api.test.myapp.example.com', OLD_DNS))

    validate_aliases(resolver, ['api.test.myapp.example.com'], OUR_DNS, previous_dns_name=OLD_DNS)

    with pytest.raises(ConflictError):
        validate_aliases(resolver, ['api.test.myapp.example.com'], OUR_DNS)


def test_plain_a_record_is_a_conflict(resolver, aws):
    aws.route53.list_resource_record_sets.return_value = records({
        'Name': 'api.test.myapp.example.com.',
        'Type': 'A',
        'TTL': 300,
        'ResourceRecords': [{'Value': '192.0.2.1'}],
    })

    with pytest.raises(ConflictError, match='^Alias api.test.myapp.example.com is already in use$'):
        validate_aliases(resolver, ['api.test.myapp.example.com'], OUR_DNS)


def test_other_record_types_are_free(resolver, aws):
    aws.route53.list_resource_record_sets.return_value = records({
        'Name': 'api.test.myapp.example.com.',
        'Type': 'CNAME',
        'TTL': 300,
        'ResourceRecords': [{'Value': 'somewhere.example.org'}],
    })

    validate_aliases(resolver, ['api.test.myapp.example.com'], OUR_DNS)


def test_any_alias_record_conflicts_without_our_own_dns(resolver, aws):
    aws.route53.list_resource_record_sets.return_value = records(a_record('api.test.myapp.example.com', OTHER_DNS))

    with pytest.raises(ConflictError):
        validate_aliases(resolver, ['api.test.myapp.example.com'], None)


def test_one_conflict_fails_all(resolver, aws):
    aws.app_route53.list_resource_record_sets.return_value = records(a_record('www.myapp.example.com', OTHER_DNS))

    with pytest.raises(ConflictError):
        validate_aliases(resolver, ['api.test.myapp.example.com', 'www.myapp.example.com', 'example.com'], OUR_DNS)

    # Every alias was still checked
    assert aws.route53.list_resource_record_sets.call_count == 1
    assert aws.app_route53.list_resource_record_sets.call_count == 2


def test_unrecognized_alias(resolver, aws):
    with pytest.raises(UnrecognizedDomainError):
        validate_aliases(resolver, ['foobar.com'], OUR_DNS)

    validate_aliases(resolver, ['foobar.com'], OUR_DNS, unrecognized=Unrecognized.SKIP)


def test_aliases_from_json():
    assert aliases_from_json('{"frontend": ["test.foobar.com", "foobar.com"], "api": ["foobar.com", "api.foobar.com"]}') == [
        'test.foobar.com', 'foobar.com', 'api.foobar.com'
    ]
    assert aliases_from_json('') == []
    assert aliases_from_json(None) == []


def test_aliases_from_invalid_json():
    with pytest.raises(FatalError, match='Cannot parse {frontend into JSON format.'):
        aliases_from_json('{frontend')
