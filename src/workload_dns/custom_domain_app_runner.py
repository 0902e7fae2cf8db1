"""
Associates a custom domain with an App Runner service

App Runner serves the domain once it is associated and its certificate is validated. The
domain's CNAME record and the certificate validation records App Runner asks for are created
in the application zone, which may be in another account.

"""

import logging

from workload_dns.clients import Clients
from workload_dns.custom_resource import run
from workload_dns.errors import CustomDomainAlreadyAssociated, CustomDomainNotFound, FatalError, aws_call
from workload_dns.parallel import fan_out
from workload_dns.reconciler import Direction, Machine, Outcome, Workflow, direction_for
from workload_dns.records import DELETE, UPSERT, change_records, value_record_change, wait_for_changes
from workload_dns.settings import (
    ATTEMPTS_CUSTOM_DOMAIN_DISASSOCIATED,
    ATTEMPTS_CUSTOM_DOMAIN_PENDING_VALIDATION,
    DELAY_CUSTOM_DOMAIN_DISASSOCIATED_IN_S,
    DELAY_CUSTOM_DOMAIN_PENDING_VALIDATION_IN_S,
)
from workload_dns.zones import DomainTier, ZoneHandle, hosted_zone_id_by_name

logger = logging.getLogger(__name__)

STATUS_PENDING_VALIDATION = 'pending_certificate_dns_validation'
STATUS_ACTIVE = 'active'
STATUS_DELETE_FAILED = 'delete_failed'


def same_domain(a, b, /):
    return a.rstrip('.').lower() == b.rstrip('.').lower()


def describe_custom_domains(apprunner, service_arn, /):
    """
    The DNS target and every custom domain of a service

    :returns: (DNSTarget, [CustomDomain])
    :rtype: tuple

    """

    dns_target = None
    custom_domains = []

    request = {'ServiceArn': service_arn}
    while True:
        response = aws_call(apprunner.describe_custom_domains, **request)
        dns_target = response.get('DNSTarget', dns_target)
        custom_domains += response.get('CustomDomains', [])

        if not response.get('NextToken'):
            return dns_target, custom_domains
        request['NextToken'] = response['NextToken']


def find_custom_domain(apprunner, service_arn, domain_name, /):
    _, custom_domains = describe_custom_domains(apprunner, service_arn)
    for custom_domain in custom_domains:
        if same_domain(custom_domain['DomainName'], domain_name):
            return custom_domain
    return None


def cname_change(action, name, value, /):
    return value_record_change(action, name, 'CNAME', [value])


class AppRunnerCustomDomain(Workflow):
    """
    :param Invocation invocation: The custom resource invocation

    """

    def __init__(self, invocation):
        self.invocation = invocation
        self.direction = direction_for(invocation.request_type)

        props = invocation.props
        self.service_arn = props['ServiceARN']
        self.domain_name = props['CustomDomain']
        self.app_dns_name = props.get('AppDNSName')
        self.hosted_zone_id = props.get('HostedZoneID')

        invocation.physical_resource_id = f'/associate-domain-app-runner/{self.domain_name}'

        self.clients = Clients(
            invocation.client_factory,
            role_arn=props.get('AppDNSRole') or None,
            session_name='AppRunnerCustomDomain',
        )
        self.apprunner = self.clients.apprunner()

        self.zone = None
        self.validation_records = []
        self.changes = []

    def validate(self):
        route53 = self.clients.cross_account_route53()
        if not self.hosted_zone_id:
            self.hosted_zone_id = hosted_zone_id_by_name(route53, self.app_dns_name)
        self.zone = ZoneHandle(DomainTier.APPLICATION, self.hosted_zone_id, route53)
        return Outcome.PROCEED

    def request(self):
        try:
            dns_target = aws_call(
                self.apprunner.associate_custom_domain,
                ServiceArn=self.service_arn,
                DomainName=self.domain_name,
            )['DNSTarget']
        except CustomDomainAlreadyAssociated:
            logger.info('%s is already associated with %s', self.domain_name, self.service_arn)
            dns_target, _ = describe_custom_domains(self.apprunner, self.service_arn)

        self.changes.append(change_records(
            self.zone,
            [cname_change(UPSERT, self.domain_name, dns_target)],
            f'Point {self.domain_name} at its App Runner service'
        ))
        return Outcome.PROCEED

    def await_validation_options(self):
        status = None

        for attempt in range(ATTEMPTS_CUSTOM_DOMAIN_PENDING_VALIDATION):
            if attempt:
                self.invocation.deadline.sleep(DELAY_CUSTOM_DOMAIN_PENDING_VALIDATION_IN_S)

            custom_domain = find_custom_domain(self.apprunner, self.service_arn, self.domain_name)
            if custom_domain is None:
                raise FatalError(f'domain {self.domain_name} is not associated')

            status = custom_domain['Status']
            # An active domain already has its certificate, its records are kept up to date
            if status in [STATUS_PENDING_VALIDATION, STATUS_ACTIVE]:
                self.validation_records = custom_domain.get('CertificateValidationRecords', [])
                return Outcome.PROCEED

            logger.info(
                'Custom domain %s status is %s, waiting for %s', self.domain_name, status, STATUS_PENDING_VALIDATION
            )

        raise FatalError(f'fail to wait for state {STATUS_PENDING_VALIDATION}, stuck in {status}')

    def reconcile(self):
        if self.direction is Direction.CONVERGE:
            self.changes += fan_out(
                lambda record: change_records(
                    self.zone,
                    [cname_change(UPSERT, record['Name'], record['Value'])],
                    f'Validate the certificate for {self.domain_name}'
                ),
                self.validation_records
            )
            return Outcome.PROCEED

        try:
            response = aws_call(
                self.apprunner.disassociate_custom_domain,
                ServiceArn=self.service_arn,
                DomainName=self.domain_name,
            )
        except CustomDomainNotFound as e:
            logger.info('%s; it is already disassociated', e)
            return Outcome.CONVERGED

        deletes = [cname_change(DELETE, self.domain_name, response['DNSTarget'])]
        deletes += [
            cname_change(DELETE, record['Name'], record['Value'])
            for record in response.get('CustomDomain', {}).get('CertificateValidationRecords', [])
        ]

        self.changes = fan_out(
            lambda change: change_records(
                self.zone, [change], f'Remove {change["ResourceRecordSet"]["Name"]} of {self.domain_name}'
            ),
            deletes
        )
        return Outcome.PROCEED

    def await_propagation(self):
        wait_for_changes(self.changes, self.invocation.deadline)
        return Outcome.PROCEED

    def finish(self):
        if self.direction is Direction.TEARDOWN:
            self.wait_until_disassociated()

    def wait_until_disassociated(self):
        for attempt in range(ATTEMPTS_CUSTOM_DOMAIN_DISASSOCIATED):
            if attempt:
                self.invocation.deadline.sleep(DELAY_CUSTOM_DOMAIN_DISASSOCIATED_IN_S)

            custom_domain = find_custom_domain(self.apprunner, self.service_arn, self.domain_name)
            if custom_domain is None:
                logger.info('%s is disassociated', self.domain_name)
                return

            if custom_domain['Status'] == STATUS_DELETE_FAILED:
                raise FatalError(f'fail to disassociate domain {self.domain_name}: domain status is {STATUS_DELETE_FAILED}')

        raise FatalError(f'fail to wait for domain {self.domain_name} to be disassociated')


def reconcile(invocation):
    Machine(AppRunnerCustomDomain(invocation)).run()


def handler(event, context, **options):
    run(event, context, reconcile, 'associate the custom domain', **options)
