"""
The certificate for one service's aliases

A service behind a network load balancer, or served by CloudFront, terminates TLS with its
own certificate instead of the environment's. CloudFront only accepts certificates from
us-east-1, so those are requested there.

"""

import logging

from workload_dns.aliases import validate_aliases
from workload_dns.certificates import (
    delete_certificate,
    idempotency_token,
    ownership_tags,
    request_certificate,
    wait_for_certificate_validated,
    wait_for_validation_options,
    wait_until_unused,
)
from workload_dns.clients import Clients
from workload_dns.custom_resource import run
from workload_dns.reconciler import Direction, Machine, Outcome, Workflow, direction_for
from workload_dns.records import DELETE, UPSERT, RecordReconciler, wait_for_changes
from workload_dns.settings import CLOUDFRONT_CERTIFICATE_REGION
from workload_dns.teardown import removable_validation_options, tagged_certificates
from workload_dns.zones import DomainTemplates, DomainTier, Unrecognized, ZoneResolver

logger = logging.getLogger(__name__)


def is_true(value, /):
    # Template booleans arrive as strings
    return str(value).lower() == 'true'


def sorted_aliases(aliases, /):
    return sorted(set(aliases or []))


class WorkloadCertificate(Workflow):
    """
    :param Invocation invocation: The custom resource invocation

    """

    def __init__(self, invocation):
        self.invocation = invocation
        self.direction = direction_for(invocation.request_type)

        props = invocation.props
        self.app_name = props['AppName']
        self.env_name = props['EnvName']
        self.service_name = props['ServiceName']
        self.aliases = sorted_aliases(props.get('Aliases'))
        self.load_balancer_dns = props.get('LoadBalancerDNS')
        self.is_cloudfront = is_true(props.get('IsCloudFrontCertificate', False))

        self.templates = DomainTemplates(self.env_name, self.app_name, props['DomainName'])
        env_zone = self.templates.zone_name(DomainTier.ENVIRONMENT)
        if self.is_cloudfront:
            self.certificate_domain = f'{self.service_name}.{env_zone}'
        else:
            self.certificate_domain = f'{self.service_name}-nlb.{env_zone}'

        self.clients = Clients(
            invocation.client_factory,
            region=CLOUDFRONT_CERTIFICATE_REGION if self.is_cloudfront else None,
            role_arn=props.get('RootDNSRole'),
            session_name=f'{self.app_name}-{self.env_name}-{self.service_name}-Certificate',
        )
        self.resolver = ZoneResolver(self.templates, self.clients, props.get('EnvHostedZoneId'))
        self.records = RecordReconciler(self.resolver)

        self.arn = None
        self.certificate = None
        self.options = []
        self.changes = []

    @property
    def tags(self):
        return ownership_tags(self.app_name, self.env_name, self.service_name)

    def validate(self):
        if self.direction is Direction.TEARDOWN:
            self.arn = self.invocation.physical_resource_id
            if not self.arn or not self.arn.startswith('arn:'):
                logger.info('No certificate was created, nothing to delete')
                return Outcome.CONVERGED

            self.certificate = wait_until_unused(self.clients.acm(), self.arn, self.invocation.deadline)
            if self.certificate is None:
                return Outcome.CONVERGED

            return Outcome.PROCEED

        if self.invocation.request_type == 'Update':
            if sorted_aliases(self.invocation.old_props.get('Aliases')) == self.aliases:
                logger.info('Aliases of %s are unchanged, keeping certificate %s',
                            self.service_name, self.invocation.physical_resource_id)
                return Outcome.CONVERGED

        validate_aliases(self.resolver, self.aliases, self.load_balancer_dns)
        return Outcome.PROCEED

    def request(self):
        self.arn = request_certificate(
            self.clients.acm(),
            self.certificate_domain,
            self.aliases,
            idempotency_token(f'/{self.service_name}/{",".join(self.aliases)}'),
            self.tags,
        )

        self.invocation.physical_resource_id = self.arn
        return Outcome.PROCEED

    def await_validation_options(self):
        self.options = wait_for_validation_options(
            self.clients.acm(),
            self.arn,
            [self.certificate_domain] + self.aliases,
            self.invocation.deadline,
            self.invocation.random,
        )
        return Outcome.PROCEED

    def reconcile(self):
        if self.direction is Direction.TEARDOWN:
            siblings = tagged_certificates(self.clients.tagging(), self.clients.acm(), self.tags)
            options = removable_validation_options(
                self.certificate, siblings, self.resolver, self.load_balancer_dns,
                unrecognized=Unrecognized.ASSUME_IN_USE
            )
            self.changes = self.records.validation_records(DELETE, options, unrecognized=Unrecognized.SKIP)
        else:
            self.changes = self.records.validation_records(UPSERT, self.options, unrecognized=Unrecognized.FAIL)

        return Outcome.PROCEED

    def await_propagation(self):
        wait_for_changes(self.changes, self.invocation.deadline)

        if self.direction is Direction.CONVERGE:
            wait_for_certificate_validated(self.clients.acm(), self.arn, self.invocation.deadline)

        return Outcome.PROCEED

    def finish(self):
        if self.direction is Direction.TEARDOWN:
            delete_certificate(self.clients.acm(), self.arn)


def reconcile(invocation):
    Machine(WorkloadCertificate(invocation)).run()


def handler(event, context, **options):
    run(event, context, reconcile, 'validate the service certificate', **options)
