"""
Decide which validation records can go when a certificate is deleted

Certificates of the same owner often share validation records, e.g. an environment's legacy
certificate and its newer certificate with aliases are both validated by the record for the
environment domain. A record is only deleted when nothing else still needs it.

"""

import logging

from workload_dns.aliases import existing_record, same_dns_name
from workload_dns.certificates import describe_certificate
from workload_dns.errors import CertificateNotFound, aws_pages
from workload_dns.parallel import fan_out
from workload_dns.records import unique_validation_options
from workload_dns.zones import Unrecognized

logger = logging.getLogger(__name__)


def record_key(record, /):
    return record['Name'], record['Value']


def tagged_certificates(tagging, acm, tags, /):
    """
    Describe every certificate with the given tags

    :param tagging: Resource Groups Tagging API client
    :param acm: ACM client in the same region
    :param list tags: ``[{'Key': ..., 'Value': ...}]`` that all must match
    :rtype: list[dict]

    """

    arns = []
    for page in aws_pages(
        tagging.get_paginator('get_resources'),
        TagFilters=[{'Key': tag['Key'], 'Values': [tag['Value']]} for tag in tags],
        ResourceTypeFilters=['acm:certificate'],
    ):
        arns += [mapping['ResourceARN'] for mapping in page.get('ResourceTagMappingList', [])]

    def describe(arn):
        try:
            return describe_certificate(acm, arn)
        except CertificateNotFound:
            # The tagging API lags behind ACM and still lists recently deleted certificates
            logger.info('Certificate %s no longer exists', arn)
            return None

    return [certificate for certificate in fan_out(describe, arns) if certificate is not None]


def orphaned_validation_options(certificate, siblings, /):
    """
    The validation options used only by the certificate being deleted

    :param dict certificate: The certificate being deleted
    :param siblings: Every certificate with the same owner, which may include the one being deleted
    :returns: Options with unique records that no other certificate uses
    :rtype: list

    """

    arn = certificate['CertificateArn'].lower()

    in_use = set()
    for sibling in siblings:
        if sibling['CertificateArn'].lower() == arn:
            continue

        for option in sibling.get('DomainValidationOptions', []):
            if option.get('ResourceRecord'):
                in_use.add(record_key(option['ResourceRecord']))

    orphaned = []
    for option in unique_validation_options(certificate.get('DomainValidationOptions', [])):
        if record_key(option['ResourceRecord']) in in_use:
            logger.info(
                'Keeping validation record %s, another certificate uses it', option['ResourceRecord']['Name']
            )
            continue
        orphaned.append(option)

    return orphaned


def in_use_by_other_services(resolver, domain_name, dns_name, /, unrecognized=Unrecognized.ASSUME_IN_USE):
    """
    Is a domain name an alias for some other service?

    :param ZoneResolver resolver: Resolves the zone for the name
    :param str domain_name: The name validated by a validation record
    :param str dns_name: This service's public DNS name. Without one, any alias is considered this service's.
    :param Unrecognized unrecognized: How to treat names in none of the zones
    :rtype: bool

    """

    zone = resolver.resolve(domain_name, unrecognized=unrecognized)
    if zone is None:
        # We can't check a name in an unknown zone, it may not be ours to remove
        return unrecognized is Unrecognized.ASSUME_IN_USE

    record = existing_record(zone, domain_name)
    if record is None:
        return False

    if not dns_name:
        return False

    alias_target = record.get('AliasTarget')
    return not (alias_target and same_dns_name(alias_target['DNSName'], dns_name))


def removable_validation_options(certificate, siblings, resolver, dns_name, /, check_aliases=True,
                                 unrecognized=Unrecognized.ASSUME_IN_USE):
    """
    The validation options to delete along with a certificate

    :param dict certificate: The certificate being deleted
    :param siblings: Every certificate with the same owner
    :param ZoneResolver resolver: Resolves the zone for each name
    :param str dns_name: This service's public DNS name
    :param bool check_aliases: Keep records for names that are aliases of another service
    :param Unrecognized unrecognized: How to treat names in none of the zones
    :rtype: list

    """

    options = orphaned_validation_options(certificate, siblings)
    if not check_aliases:
        return options

    in_use = fan_out(
        lambda option: in_use_by_other_services(resolver, option['DomainName'], dns_name, unrecognized=unrecognized),
        options
    )

    removable = []
    for option, used in zip(options, in_use):
        if used:
            logger.info('Keeping validation record for %s, it is in use by another service', option['DomainName'])
            continue
        removable.append(option)

    return removable
