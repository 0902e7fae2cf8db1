"""
boto3 clients for a single invocation

Clients are created on first use and kept for the rest of the invocation only.

"""

import logging
import threading

from boto3 import client

from workload_dns.errors import aws_call
from workload_dns.settings import ASSUME_ROLE_DURATION_SECONDS

logger = logging.getLogger(__name__)


class Clients:
    """
    Lazily created AWS clients

    :param factory: Creates a client, with the signature of :func:`boto3.client`
    :param str region: Region for regional services, or None for the Lambda's region
    :param str role_arn: Role to assume for Route53 changes in the application and root zones
    :param str session_name: Name of the assumed role session

    """

    def __init__(self, factory=client, region=None, role_arn=None, session_name='WorkloadDns'):
        self._factory = factory
        self.region = region
        self.role_arn = role_arn
        self.session_name = session_name[:64]
        self._clients = {}
        self._lock = threading.RLock()

    def _get(self, key, create):
        with self._lock:
            if key not in self._clients:
                self._clients[key] = create()
            return self._clients[key]

    def acm(self, region=None):
        region = region or self.region
        return self._get(('acm', region), lambda: self._factory('acm', region_name=region))

    def tagging(self, region=None):
        region = region or self.region
        return self._get(('resourcegroupstaggingapi', region),
                         lambda: self._factory('resourcegroupstaggingapi', region_name=region))

    def apprunner(self):
        return self._get('apprunner', lambda: self._factory('apprunner'))

    def cloudformation(self):
        return self._get('cloudformation', lambda: self._factory('cloudformation'))

    def route53(self):
        """The Route53 client for this account, used for the environment zone"""
        return self._get('route53', lambda: self._factory('route53'))

    def cross_account_route53(self):
        """
        The Route53 client for the application and root zones

        These zones may live in another account, so the client uses credentials from assuming
        role_arn on top of the Lambda's own credentials. Without a role, this is the local client.

        """

        if self.role_arn is None:
            return self.route53()

        def create():
            logger.info('Assuming role %s for Route53', self.role_arn)
            credentials = aws_call(
                self._get('sts', lambda: self._factory('sts')).assume_role,
                RoleArn=self.role_arn,
                RoleSessionName=self.session_name,
                DurationSeconds=ASSUME_ROLE_DURATION_SECONDS,
            )['Credentials']

            return self._factory(
                'route53',
                aws_access_key_id=credentials['AccessKeyId'],
                aws_secret_access_key=credentials['SecretAccessKey'],
                aws_session_token=credentials['SessionToken'],
            )

        return self._get('route53:cross-account', create)
