import json
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from workload_dns.clients import Clients
from workload_dns.custom_resource import Invocation
from workload_dns.deadline import Deadline
from workload_dns.zones import DomainTemplates, ZoneResolver

APP = 'myapp'
ENV = 'test'
DOMAIN = 'example.com'

ENV_ZONE_ID = 'ZENV'
HOSTED_ZONE_IDS = {
    'test.myapp.example.com': ENV_ZONE_ID,
    'myapp.example.com': 'ZAPP',
    'example.com': 'ZROOT',
}

ROLE_ARN = 'arn:aws:iam::222222222222:role/myapp-DNSDelegationRole'
CERTIFICATE_ARN = 'arn:aws:acm:us-west-2:111111111111:certificate/11111111-1111-1111-1111-111111111111'


def client_error(code, message, operation='Operation'):
    """A real botocore error, as raised by a client method"""
    return ClientError({'Error': {'Code': code, 'Message': message}}, operation)


def route53_client():
    route53 = MagicMock()

    def list_hosted_zones_by_name(DNSName, MaxItems):
        return {'HostedZones': [{'Name': DNSName + '.', 'Id': '/hostedzone/' + HOSTED_ZONE_IDS[DNSName]}]}

    route53.list_hosted_zones_by_name.side_effect = list_hosted_zones_by_name
    route53.list_resource_record_sets.return_value = {'ResourceRecordSets': []}
    route53.change_resource_record_sets.return_value = {'ChangeInfo': {'Id': '/change/C1', 'Status': 'PENDING'}}
    route53.get_change.return_value = {'ChangeInfo': {'Id': '/change/C1', 'Status': 'INSYNC'}}
    return route53


class FakeAws:
    """
    Stands in for boto3.client

    Route53 clients created with assumed role credentials are the application account's,
    anything else is this account's.

    """

    def __init__(self):
        self.route53 = route53_client()
        self.app_route53 = route53_client()

        self.acm = MagicMock()
        self.acm.request_certificate.return_value = {'CertificateArn': CERTIFICATE_ARN}
        self.regional_acm = {}

        self.tagging = MagicMock()
        self.tagging.get_paginator.return_value.paginate.return_value = [{'ResourceTagMappingList': []}]

        self.cloudformation = MagicMock()
        self.apprunner = MagicMock()

        self.sts = MagicMock()
        self.sts.assume_role.return_value = {
            'Credentials': {
                'AccessKeyId': 'ASIAEXAMPLE',
                'SecretAccessKey': 'secret',
                'SessionToken': 'token',
            }
        }

        self.calls = []

    def acm_in(self, region):
        return self.regional_acm.setdefault(region, MagicMock())

    def __call__(self, service, **kwargs):
        self.calls.append((service, kwargs))

        if service == 'route53':
            return self.app_route53 if 'aws_session_token' in kwargs else self.route53

        if service == 'acm':
            region = kwargs.get('region_name')
            return self.acm if region is None else self.acm_in(region)

        return {
            'resourcegroupstaggingapi': self.tagging,
            'cloudformation': self.cloudformation,
            'apprunner': self.apprunner,
            'sts': self.sts,
        }[service]


@pytest.fixture()
def aws():
    return FakeAws()


@pytest.fixture()
def lambda_context():
    context = MagicMock()
    context.get_remaining_time_in_millis.return_value = 900 * 1000
    context.log_group_name = '/aws/lambda/WorkloadDns'
    context.log_stream_name = '2026/10/19/[$LATEST]abcdef'
    return context


@pytest.fixture()
def deadline():
    return Deadline(870, 'test', sleep=lambda seconds: None)


@pytest.fixture()
def resolver(aws):
    return ZoneResolver(
        DomainTemplates(ENV, APP, DOMAIN),
        Clients(aws, role_arn=ROLE_ARN),
        ENV_ZONE_ID
    )


def make_event(request_type, props, old_props=None, physical_resource_id=None):
    event = {
        'RequestType': request_type,
        'ResponseURL': 'https://cloudformation-custom-resource-response.s3.amazonaws.com/response',
        'StackId': 'arn:aws:cloudformation:us-west-2:111111111111:stack/myapp-test/guid',
        'RequestId': 'f4ef1b10-c39a-44e3-99c7-4b6b0f0c5f8f',
        'LogicalResourceId': 'Resource',
        'ResourceType': 'Custom::Resource',
        'ResourceProperties': props,
    }
    if old_props is not None:
        event['OldResourceProperties'] = old_props
    if physical_resource_id is not None:
        event['PhysicalResourceId'] = physical_resource_id
    return event


@pytest.fixture()
def invocation(aws, lambda_context, deadline):
    """Build an Invocation for calling a workflow directly"""

    def build(request_type, props, old_props=None, physical_resource_id=None):
        return Invocation(
            make_event(request_type, props, old_props, physical_resource_id),
            lambda_context,
            deadline,
            client_factory=aws,
            random=lambda: 0,
        )

    return build


class Responses:
    """Records the responses sent to CloudFormation"""

    def __init__(self):
        self.requests = []
        self.status = 200

    def urlopen(self, request):
        self.requests.append(request)
        response = MagicMock()
        response.status = self.status
        return response

    @property
    def last(self):
        return json.loads(self.requests[-1].data)


@pytest.fixture()
def responses(monkeypatch):
    responses = Responses()
    monkeypatch.setattr('workload_dns.custom_resource.urlopen', responses.urlopen)
    return responses


@pytest.fixture()
def invoke(aws, lambda_context, responses):
    """Call a handler the way Lambda would, returning the response sent to CloudFormation"""

    def call(handler, request_type, props, old_props=None, physical_resource_id=None):
        handler(
            make_event(request_type, props, old_props, physical_resource_id),
            lambda_context,
            client_factory=aws,
            sleep=lambda seconds: None,
            random=lambda: 0,
        )
        return responses.last

    return call
