"""
Route53 record changes

Changes to independent records are made in parallel. Each change returns a
:class:`PendingChange` that must be waited on until Route53 reports it INSYNC.

"""

import logging
from collections import namedtuple

from workload_dns.errors import FatalError, RecordNotFound, RecordValuesMismatch, aws_call
from workload_dns.parallel import fan_out
from workload_dns.settings import ATTEMPTS_RECORD_SETS_CHANGE, DELAY_RECORD_SETS_CHANGE_IN_S, RECORD_TTL
from workload_dns.zones import Unrecognized

logger = logging.getLogger(__name__)

UPSERT = 'UPSERT'
DELETE = 'DELETE'

PendingChange = namedtuple('PendingChange', ['route53', 'change_id', 'description'])


def value_record_change(action, name, record_type, values, /):
    return {
        'Action': action,
        'ResourceRecordSet': {
            'Name': name,
            'Type': record_type,
            'TTL': RECORD_TTL,
            'ResourceRecords': [{'Value': value} for value in values],
        },
    }


def validation_record_change(action, resource_record, /):
    return value_record_change(action, resource_record['Name'], resource_record['Type'], [resource_record['Value']])


def alias_record_change(action, alias, dns_name, hosted_zone_id, /):
    return {
        'Action': action,
        'ResourceRecordSet': {
            'Name': alias,
            'Type': 'A',
            'AliasTarget': {
                'DNSName': dns_name,
                'EvaluateTargetHealth': True,
                'HostedZoneId': hosted_zone_id,
            },
        },
    }


def change_records(zone, changes, comment, /):
    """
    Submit a change batch to a hosted zone

    For a DELETE batch, a record that no longer exists is already in the desired state and
    a record whose values differ is owned by someone else now. Neither is an error; no
    change is made and None is returned.

    :param ZoneHandle zone: The zone to change
    :param list changes: Route53 changes
    :param str comment: Change batch comment
    :rtype: PendingChange or None

    """

    for change in changes:
        record_set = change['ResourceRecordSet']
        logger.info(
            '%s %s %s record in hosted zone %s', change['Action'], record_set['Name'], record_set['Type'],
            zone.hosted_zone_id
        )

    try:
        response = aws_call(
            zone.route53.change_resource_record_sets,
            HostedZoneId=zone.hosted_zone_id,
            ChangeBatch={
                'Comment': comment,
                'Changes': changes,
            }
        )
    except RecordNotFound as e:
        if not all(change['Action'] == DELETE for change in changes):
            raise
        logger.info('%s; the record is already deleted', e)
        return None
    except RecordValuesMismatch as e:
        if not all(change['Action'] == DELETE for change in changes):
            raise
        logger.warning('%s; the record is not pointing to what we created, leaving it alone', e)
        return None

    return PendingChange(zone.route53, response['ChangeInfo']['Id'], comment)


def wait_for_change(change, deadline, /):
    """
    Wait until Route53 has propagated a change

    :param PendingChange change: The change to wait for
    :param Deadline deadline: The invocation deadline

    """

    for attempt in range(ATTEMPTS_RECORD_SETS_CHANGE):
        if attempt:
            deadline.sleep(DELAY_RECORD_SETS_CHANGE_IN_S)

        status = aws_call(change.route53.get_change, Id=change.change_id)['ChangeInfo']['Status']
        if status == 'INSYNC':
            logger.info('Change %s (%s) is INSYNC', change.change_id, change.description)
            return

    raise FatalError(
        f'Change {change.change_id} ({change.description}) was not INSYNC after {ATTEMPTS_RECORD_SETS_CHANGE} attempts'
    )


def wait_for_changes(changes, deadline, /):
    fan_out(lambda change: wait_for_change(change, deadline), [change for change in changes if change is not None])


def unique_validation_options(options, /):
    """
    Remove validation options that share a record

    A name and its wildcard, e.g. ``example.com`` and ``*.example.com``, are validated by the same record.

    :param options: ACM DomainValidationOptions
    :rtype: list

    """

    seen = set()
    unique = []
    for option in options:
        record = option.get('ResourceRecord')
        if record is None:
            continue

        key = (record['Name'], record['Value'])
        if key in seen:
            continue

        seen.add(key)
        unique.append(option)
    return unique


class RecordReconciler:
    """
    Makes the records for a set of names exist, or not exist

    :param ZoneResolver resolver: Resolves the zone for each name

    """

    def __init__(self, resolver):
        self.resolver = resolver

    def _apply(self, items, name_of, change_for, comment_for, unrecognized):
        def apply(item):
            zone = self.resolver.resolve(name_of(item), unrecognized=unrecognized)
            if zone is None:
                return None
            return change_records(zone, [change_for(item)], comment_for(item))

        return [change for change in fan_out(apply, items) if change is not None]

    def validation_records(self, action, options, /, unrecognized=Unrecognized.FAIL):
        """
        Create or delete the DNS validation records of a certificate

        :param str action: UPSERT or DELETE
        :param options: ACM DomainValidationOptions with a ResourceRecord
        :param Unrecognized unrecognized: How to treat domains in none of the zones
        :returns: The changes to wait for
        :rtype: list[PendingChange]

        """

        if action == DELETE:
            comment = lambda option: f'Delete the validation record for {option["DomainName"]}'
        else:
            comment = lambda option: f'Validate the certificate for the alias {option["DomainName"]}'

        return self._apply(
            unique_validation_options(options),
            lambda option: option['DomainName'],
            lambda option: validation_record_change(action, option['ResourceRecord']),
            comment,
            unrecognized
        )

    def alias_records(self, action, aliases, dns_name, hosted_zone_id, /, unrecognized=Unrecognized.FAIL):
        """
        Create or delete A records that point aliases at a load balancer or distribution

        :param str action: UPSERT or DELETE
        :param aliases: The alias names
        :param str dns_name: The alias target DNS name
        :param str hosted_zone_id: The hosted zone of the alias target
        :param Unrecognized unrecognized: How to treat aliases in none of the zones
        :returns: The changes to wait for
        :rtype: list[PendingChange]

        """

        if action == DELETE:
            comment = lambda alias: f'Delete the A-record for {alias}'
        else:
            comment = lambda alias: f'Upsert A-record for alias {alias}'

        return self._apply(
            sorted(set(aliases)),
            lambda alias: alias,
            lambda alias: alias_record_change(action, alias, dns_name, hosted_zone_id),
            comment,
            unrecognized
        )
