"""
Alias ownership checks

An alias A record belongs to the service whose public DNS name it targets. Before a service
claims an alias, make sure no other service already owns it.

"""

import json
import logging

from workload_dns.errors import ConflictError, FatalError, aws_call
from workload_dns.parallel import fan_out
from workload_dns.zones import Unrecognized

logger = logging.getLogger(__name__)


def same_dns_name(a, b, /):
    if not a or not b:
        return False
    return a.rstrip('.').lower() == b.rstrip('.').lower()


def existing_record(zone, name, /, record_type=None):
    """
    Return the record set with exactly this name, if there is one

    :param ZoneHandle zone: The zone to look in
    :param str name: The record name
    :param str record_type: Start listing at this type
    :rtype: dict or None

    """

    request = {
        'HostedZoneId': zone.hosted_zone_id,
        'StartRecordName': name,
        'MaxItems': '1',
    }
    if record_type is not None:
        request['StartRecordType'] = record_type

    record_sets = aws_call(zone.route53.list_resource_record_sets, **request).get('ResourceRecordSets', [])

    # The listing starts at the name, the first record may belong to a later name
    if record_sets and same_dns_name(record_sets[0]['Name'], name):
        return record_sets[0]

    return None


def validate_aliases(resolver, aliases, dns_name, /, previous_dns_name=None, unrecognized=Unrecognized.FAIL):
    """
    Check that none of the aliases are owned by another service

    :param ZoneResolver resolver: Resolves the zone for each alias
    :param aliases: The aliases the caller wants to claim
    :param str dns_name: The caller's public DNS name, or None if it has none yet
    :param str previous_dns_name: The DNS name the caller had before this update
    :param Unrecognized unrecognized: How to treat aliases in none of the zones
    :raises ConflictError: If any alias is in use by someone else

    """

    def validate(alias):
        zone = resolver.resolve(alias, unrecognized=unrecognized)
        if zone is None:
            return

        record = existing_record(zone, alias, record_type='A')
        if record is None or record['Type'] != 'A':
            return

        alias_target = record.get('AliasTarget')
        if alias_target:
            if same_dns_name(alias_target['DNSName'], dns_name):
                logger.info('Alias %s already points to %s', alias, dns_name)
                return

            if same_dns_name(alias_target['DNSName'], previous_dns_name):
                logger.info('Alias %s points to the previous DNS name %s', alias, previous_dns_name)
                return

            raise ConflictError(
                f'Alias {alias} is already in use by {alias_target["DNSName"]}. '
                'This could be another load balancer of a different service.'
            )

        raise ConflictError(f'Alias {alias} is already in use')

    fan_out(validate, sorted(set(aliases)))


def aliases_from_json(value, /):
    """
    Flatten a JSON map of service to aliases

    ``{"frontend": ["test.foobar.com", "foobar.com"], "api": ["api.foobar.com"]}`` becomes
    ``['test.foobar.com', 'foobar.com', 'api.foobar.com']``

    :param str value: The JSON document, or an empty value for no aliases
    :rtype: list[str]

    """

    try:
        services = json.loads(value or '{}')
    except ValueError:
        raise FatalError(f'Cannot parse {value} into JSON format.')

    aliases = []
    for service_aliases in services.values():
        for alias in service_aliases or []:
            if alias not in aliases:
                aliases.append(alias)
    return aliases
