"""
A records that point aliases at a service's load balancer or distribution

Two resources use this, with different properties:

- the environment level resource, with every service's aliases as a JSON map. Aliases outside
  the application's zones are left for the user to manage.
- the service level resource, with one service's aliases as a list. Every alias must be in one
  of the application's zones.

"""

import logging

from workload_dns.aliases import aliases_from_json, validate_aliases
from workload_dns.clients import Clients
from workload_dns.custom_resource import run
from workload_dns.reconciler import Direction, Machine, Outcome, Workflow, direction_for
from workload_dns.records import DELETE, UPSERT, RecordReconciler, wait_for_changes
from workload_dns.zones import DomainTemplates, Unrecognized, ZoneResolver

logger = logging.getLogger(__name__)


class Target:
    """
    The aliases of a resource and what they point at

    :param list aliases: The alias names
    :param str dns_name: The DNS name of the load balancer or distribution
    :param str hosted_zone_id: The canonical hosted zone of the load balancer or distribution

    """

    def __init__(self, aliases, dns_name, hosted_zone_id):
        self.aliases = sorted(set(aliases))
        self.dns_name = dns_name
        self.hosted_zone_id = hosted_zone_id

    def __eq__(self, other):
        return (self.aliases, self.dns_name, self.hosted_zone_id) == \
               (other.aliases, other.dns_name, other.hosted_zone_id)


def environment_target(props, /):
    return Target(
        aliases_from_json(props.get('Aliases')),
        props.get('PublicAccessDNS'),
        props.get('PublicAccessHostedZone'),
    )


def workload_target(props, /):
    return Target(
        props.get('Aliases') or [],
        props.get('PublicAccessDNS'),
        props.get('PublicAccessHostedZoneID'),
    )


class CustomDomain(Workflow):
    """
    :param Invocation invocation: The custom resource invocation
    :param target: Reads a :class:`Target` from resource properties
    :param str role_property: The property with the role for the application and root zones
    :param Unrecognized unrecognized: How to treat aliases outside the application's zones

    """

    def __init__(self, invocation, target, role_property, unrecognized):
        self.invocation = invocation
        self.direction = direction_for(invocation.request_type)
        self.unrecognized = unrecognized

        props = invocation.props
        self.target = target(props)
        self.old_target = target(invocation.old_props) if invocation.request_type == 'Update' else None

        # The id never changes, so an update never replaces the records
        invocation.physical_resource_id = invocation.event['LogicalResourceId']

        self.clients = Clients(
            invocation.client_factory,
            role_arn=props.get(role_property),
            session_name=f'{props["AppName"]}-{props["EnvName"]}-CustomDomain',
        )
        self.resolver = ZoneResolver(
            DomainTemplates(props['EnvName'], props['AppName'], props['DomainName']),
            self.clients,
            props.get('EnvHostedZoneId'),
        )
        self.records = RecordReconciler(self.resolver)

        self.changes = []
        self.unused_aliases = []

    def validate(self):
        if self.direction is Direction.TEARDOWN:
            return Outcome.PROCEED

        if self.old_target is not None:
            if self.old_target == self.target:
                logger.info('Aliases and their target are unchanged')
                return Outcome.CONVERGED

            self.unused_aliases = [alias for alias in self.old_target.aliases if alias not in self.target.aliases]

        validate_aliases(
            self.resolver, self.target.aliases, self.target.dns_name,
            previous_dns_name=self.old_target.dns_name if self.old_target else None,
            unrecognized=self.unrecognized,
        )
        return Outcome.PROCEED

    def reconcile(self):
        action = DELETE if self.direction is Direction.TEARDOWN else UPSERT
        self.changes = self.records.alias_records(
            action, self.target.aliases, self.target.dns_name, self.target.hosted_zone_id,
            unrecognized=self.unrecognized
        )
        return Outcome.PROCEED

    def await_propagation(self):
        wait_for_changes(self.changes, self.invocation.deadline)

        if self.unused_aliases:
            logger.info('Removing aliases that are no longer used: %s', ', '.join(self.unused_aliases))

            # A deleted record must match the record as it was created
            self.changes = self.records.alias_records(
                DELETE, self.unused_aliases, self.old_target.dns_name, self.old_target.hosted_zone_id,
                unrecognized=self.unrecognized
            )
            wait_for_changes(self.changes, self.invocation.deadline)

        return Outcome.PROCEED


def reconcile(invocation):
    Machine(CustomDomain(invocation, environment_target, 'AppDNSRole', Unrecognized.SKIP)).run()


def reconcile_workload(invocation):
    Machine(CustomDomain(invocation, workload_target, 'RootDNSRole', Unrecognized.FAIL)).run()


def handler(event, context, **options):
    run(event, context, reconcile, 'update the custom domain records', **options)


def workload_handler(event, context, **options):
    run(event, context, reconcile_workload, 'update the custom domain records', **options)
