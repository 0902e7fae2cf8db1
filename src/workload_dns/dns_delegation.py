"""
Delegates a subdomain from the root zone

The NS record for the subdomain is created in the root hosted zone, which may be in another
account.

"""

import logging

from workload_dns.aliases import existing_record
from workload_dns.clients import Clients
from workload_dns.custom_resource import run
from workload_dns.reconciler import Direction, Machine, Outcome, Workflow, direction_for
from workload_dns.records import DELETE, UPSERT, change_records, value_record_change, wait_for_changes
from workload_dns.zones import DomainTier, ZoneHandle, hosted_zone_id_by_name

logger = logging.getLogger(__name__)


class DnsDelegation(Workflow):
    """
    :param Invocation invocation: The custom resource invocation

    """

    def __init__(self, invocation):
        self.invocation = invocation
        self.direction = direction_for(invocation.request_type)

        props = invocation.props
        self.domain_name = props['DomainName']
        self.subdomain = props['SubdomainName']
        self.name_servers = props.get('NameServers') or []

        invocation.physical_resource_id = self.subdomain

        self.clients = Clients(
            invocation.client_factory,
            role_arn=props.get('RootDNSRole'),
            session_name='DnsDelegation',
        )
        self.hosted_zone_id = props.get('RootHostedZoneId')

        self.zone = None
        self.changes = []

    def validate(self):
        route53 = self.clients.cross_account_route53()
        if not self.hosted_zone_id:
            self.hosted_zone_id = hosted_zone_id_by_name(route53, self.domain_name)
        self.zone = ZoneHandle(DomainTier.ROOT, self.hosted_zone_id, route53)
        return Outcome.PROCEED

    def reconcile(self):
        if self.direction is Direction.CONVERGE:
            change = value_record_change(UPSERT, self.subdomain, 'NS', self.name_servers)
            self.changes = [change_records(self.zone, [change], f'Delegate {self.subdomain}')]
            return Outcome.PROCEED

        record = existing_record(self.zone, self.subdomain, record_type='NS')
        if record is None or record['Type'] != 'NS':
            logger.info('There is no NS record for %s, it is already deleted', self.subdomain)
            return Outcome.CONVERGED

        # Delete the record exactly as it is now
        change = {'Action': DELETE, 'ResourceRecordSet': record}
        self.changes = [change_records(self.zone, [change], f'Remove the delegation of {self.subdomain}')]
        return Outcome.PROCEED

    def await_propagation(self):
        wait_for_changes(self.changes, self.invocation.deadline)
        return Outcome.PROCEED


def reconcile(invocation):
    Machine(DnsDelegation(invocation)).run()


def handler(event, context, **options):
    run(event, context, reconcile, 'delegate the subdomain', **options)
