"""
The certificate for an environment

Covers ``env.app.domain``, ``*.env.app.domain`` and any aliases of the environment's
services, validated by records in whichever of the environment, application or root zones
the names belong to.

"""

import logging

from workload_dns.aliases import aliases_from_json
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
from workload_dns.teardown import removable_validation_options, tagged_certificates
from workload_dns.zones import DomainTemplates, DomainTier, Unrecognized, ZoneResolver

logger = logging.getLogger(__name__)


class EnvironmentCertificate(Workflow):
    """
    :param Invocation invocation: The custom resource invocation

    """

    def __init__(self, invocation):
        self.invocation = invocation
        self.direction = direction_for(invocation.request_type)

        props = invocation.props
        self.app_name = props['AppName']
        self.env_name = props['EnvName']

        self.templates = DomainTemplates(self.env_name, self.app_name, props['DomainName'])
        self.certificate_domain = self.templates.zone_name(DomainTier.ENVIRONMENT)

        self.clients = Clients(
            invocation.client_factory,
            region=props.get('Region'),
            role_arn=props.get('RootDNSRole'),
            session_name=f'{self.app_name}-{self.env_name}-EnvCertificate',
        )
        self.resolver = ZoneResolver(self.templates, self.clients, props.get('EnvHostedZoneId'))
        self.records = RecordReconciler(self.resolver)

        self.subject_alternative_names = []
        self.arn = None
        self.certificate = None
        self.options = []
        self.changes = []

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

        self.subject_alternative_names = [f'*.{self.certificate_domain}']
        for alias in aliases_from_json(self.invocation.props.get('Aliases')):
            if self.templates.classify(alias) is DomainTier.UNRECOGNIZED:
                logger.info('Not adding %s to the certificate, it is not in a zone of the application', alias)
                continue
            self.subject_alternative_names.append(alias)

        return Outcome.PROCEED

    def request(self):
        self.arn = request_certificate(
            self.clients.acm(),
            self.certificate_domain,
            self.subject_alternative_names,
            idempotency_token(self.invocation.event['RequestId']),
            ownership_tags(self.app_name, self.env_name),
        )

        self.invocation.physical_resource_id = self.arn
        self.invocation.data['Arn'] = self.arn
        return Outcome.PROCEED

    def await_validation_options(self):
        self.options = wait_for_validation_options(
            self.clients.acm(),
            self.arn,
            [self.certificate_domain] + self.subject_alternative_names,
            self.invocation.deadline,
            self.invocation.random,
        )
        return Outcome.PROCEED

    def reconcile(self):
        if self.direction is Direction.TEARDOWN:
            siblings = tagged_certificates(
                self.clients.tagging(), self.clients.acm(), ownership_tags(self.app_name, self.env_name)
            )
            options = removable_validation_options(
                self.certificate, siblings, self.resolver, None, check_aliases=False
            )
            self.changes = self.records.validation_records(DELETE, options, unrecognized=Unrecognized.SKIP)
        else:
            self.changes = self.records.validation_records(UPSERT, self.options, unrecognized=Unrecognized.SKIP)

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
    Machine(EnvironmentCertificate(invocation)).run()


def handler(event, context, **options):
    run(event, context, reconcile, 'validate the environment certificate', **options)
