"""
Hosted zone resolution for the environment, application and root domains

A workload's names live in one of three hosted zones:

- the environment zone ``env.app.domain``, in this account
- the application zone ``app.domain``, possibly in another account
- the root zone ``domain``, possibly in another account

"""

import enum
import logging
import re
import threading
from collections import namedtuple

from workload_dns.errors import UnrecognizedDomainError, FatalError, aws_call

logger = logging.getLogger(__name__)


class DomainTier(enum.Enum):
    ENVIRONMENT = 'environment'
    APPLICATION = 'application'
    ROOT = 'root'
    UNRECOGNIZED = 'unrecognized'


class Unrecognized(enum.Enum):
    """What a caller does with a name that is in none of the zones"""

    # Leave the name alone
    SKIP = 'skip'
    # Fail the invocation
    FAIL = 'fail'
    # Consider the name in use by someone else, so it is never deleted
    ASSUME_IN_USE = 'assume-in-use'


ZoneHandle = namedtuple('ZoneHandle', ['tier', 'hosted_zone_id', 'route53'])


class DomainTemplates:
    """
    The zone names for an environment of an application

    :param str env_name: The environment name
    :param str app_name: The application name
    :param str domain_name: The root domain name

    """

    def __init__(self, env_name, app_name, domain_name):
        self.zones = {
            DomainTier.ENVIRONMENT: f'{env_name}.{app_name}.{domain_name}',
            DomainTier.APPLICATION: f'{app_name}.{domain_name}',
            DomainTier.ROOT: f'{domain_name}',
        }

        # Most specific first, a name in the application zone must not be classified as root
        self._patterns = [
            (tier, re.compile(r'^([^.]+\.)?' + re.escape(zone) + r'\.?$', re.IGNORECASE))
            for tier, zone in self.zones.items()
        ]

    def zone_name(self, tier, /):
        return self.zones[tier]

    def classify(self, name, /):
        """
        Return the tier of the zone a name belongs to

        :param str name: A domain name, which may be a wildcard
        :rtype: DomainTier

        """

        for tier, pattern in self._patterns:
            if pattern.match(name):
                return tier

        return DomainTier.UNRECOGNIZED


def hosted_zone_id_by_name(route53, domain, /):
    """
    Find the id of the public hosted zone for a domain

    :param route53: The Route53 client for the account that owns the zone
    :param str domain: The zone's domain name
    :rtype: str

    """

    response = aws_call(route53.list_hosted_zones_by_name, DNSName=domain, MaxItems='1')

    zones = [
        zone for zone in response.get('HostedZones', [])
        if zone['Name'].rstrip('.').lower() == domain.rstrip('.').lower()
    ]

    if not zones:
        raise FatalError(f"Couldn't find any Hosted Zone with DNS name {domain}.")

    # HostedZone ids are of the form /hostedzone/Z1234, the id is after the last slash
    return zones[0]['Id'].split('/')[-1]


class ZoneResolver:
    """
    Resolves names to the hosted zone and client that manage them

    Hosted zone ids are looked up once per resolver, which lives for a single invocation.

    :param DomainTemplates templates: The zone names
    :param clients: The invocation's :class:`workload_dns.clients.Clients`
    :param str env_hosted_zone_id: The environment zone id, if known

    """

    def __init__(self, templates, clients, env_hosted_zone_id=None):
        self.templates = templates
        self.clients = clients
        self._zone_ids = {}
        if env_hosted_zone_id:
            self._zone_ids[DomainTier.ENVIRONMENT] = env_hosted_zone_id
        self._lock = threading.Lock()

    def route53_for(self, tier, /):
        if tier is DomainTier.ENVIRONMENT:
            return self.clients.route53()
        return self.clients.cross_account_route53()

    def hosted_zone_id(self, tier, /):
        with self._lock:
            if tier not in self._zone_ids:
                self._zone_ids[tier] = hosted_zone_id_by_name(
                    self.route53_for(tier),
                    self.templates.zone_name(tier)
                )
            return self._zone_ids[tier]

    def resolve(self, name, /, unrecognized=Unrecognized.FAIL):
        """
        Return the zone that manages a name

        :param str name: The domain name
        :param Unrecognized unrecognized: How to treat a name that is in none of the zones
        :returns: The zone, or None for an unrecognized name the caller is not failing on
        :rtype: ZoneHandle or None

        """

        tier = self.templates.classify(name)

        if tier is DomainTier.UNRECOGNIZED:
            if unrecognized is Unrecognized.FAIL:
                raise UnrecognizedDomainError(f'unrecognized domain type for {name}')

            logger.info(
                "%s does not match any of the patterns '.%s', '.%s' or '.%s'",
                name, *self.templates.zones.values()
            )
            return None

        return ZoneHandle(tier, self.hosted_zone_id(tier), self.route53_for(tier))
