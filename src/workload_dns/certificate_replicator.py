"""
Copies the environment certificate to another region

CloudFront needs a certificate in us-east-1. The copy is for the same names as the original,
so the original's validation records validate it too.

"""

import logging

from workload_dns.certificates import (
    delete_certificate,
    describe_certificate,
    idempotency_token,
    ownership_tags,
    request_certificate,
    wait_for_certificate_validated,
    wait_until_unused,
)
from workload_dns.clients import Clients
from workload_dns.custom_resource import run
from workload_dns.reconciler import Direction, Machine, Outcome, Workflow, direction_for

logger = logging.getLogger(__name__)


class CertificateReplicator(Workflow):
    """
    :param Invocation invocation: The custom resource invocation

    """

    def __init__(self, invocation):
        self.invocation = invocation
        self.direction = direction_for(invocation.request_type)

        props = invocation.props
        self.clients = Clients(invocation.client_factory)
        self.env_acm = self.clients.acm(props['EnvRegion'])
        self.target_acm = self.clients.acm(props['TargetRegion'])

        self.source = None
        self.arn = None

    def validate(self):
        if self.direction is Direction.TEARDOWN:
            self.arn = self.invocation.physical_resource_id
            if not self.arn or not self.arn.startswith('arn:'):
                logger.info('No certificate was created, nothing to delete')
                return Outcome.CONVERGED

            if wait_until_unused(self.target_acm, self.arn, self.invocation.deadline) is None:
                return Outcome.CONVERGED

            return Outcome.PROCEED

        self.source = describe_certificate(self.env_acm, self.invocation.props['CertificateArn'])
        return Outcome.PROCEED

    def request(self):
        props = self.invocation.props
        self.arn = request_certificate(
            self.target_acm,
            self.source['DomainName'],
            self.source.get('SubjectAlternativeNames', []),
            idempotency_token(self.invocation.event['RequestId']),
            ownership_tags(props['AppName'], props['EnvName']),
        )

        self.invocation.physical_resource_id = self.arn
        self.invocation.data['Arn'] = self.arn
        return Outcome.PROCEED

    def await_propagation(self):
        if self.direction is Direction.CONVERGE:
            wait_for_certificate_validated(self.target_acm, self.arn, self.invocation.deadline)
        return Outcome.PROCEED

    def finish(self):
        if self.direction is Direction.TEARDOWN:
            delete_certificate(self.target_acm, self.arn)


def reconcile(invocation):
    Machine(CertificateReplicator(invocation)).run()


def handler(event, context, **options):
    run(event, context, reconcile, 'replicate certificate', **options)
