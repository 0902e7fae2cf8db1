"""
ACM certificate requests, validation and deletion

"""

import hashlib
import logging

from workload_dns.errors import CertificateNotFound, FatalError, aws_call
from workload_dns.settings import (
    ATTEMPTS_CERTIFICATE_NOT_IN_USE,
    ATTEMPTS_CERTIFICATE_VALIDATED,
    ATTEMPTS_VALIDATION_OPTIONS_READY,
    DELAY_CERTIFICATE_NOT_IN_USE_IN_S,
    DELAY_CERTIFICATE_VALIDATED_IN_S,
    TAG_APPLICATION,
    TAG_ENVIRONMENT,
    TAG_SERVICE,
)

logger = logging.getLogger(__name__)

FAILED_STATUSES = ['FAILED', 'VALIDATION_TIMED_OUT', 'REVOKED']


def idempotency_token(value, /):
    """
    An ACM idempotency token derived from a stable value

    A retried invocation with the same value gets the certificate from the first attempt
    instead of a new one.

    :param str value: Input that is the same every time the same certificate is wanted
    :rtype: str

    """

    return hashlib.new('md5', value.encode()).hexdigest()


def ownership_tags(app_name, env_name, service_name=None, /):
    tags = [
        {'Key': TAG_APPLICATION, 'Value': app_name},
        {'Key': TAG_ENVIRONMENT, 'Value': env_name},
    ]
    if service_name is not None:
        tags.append({'Key': TAG_SERVICE, 'Value': service_name})
    return tags


def request_certificate(acm, domain_name, subject_alternative_names, token, tags, /):
    """
    Request a DNS validated certificate

    :param acm: ACM client
    :param str domain_name: The certificate's domain name
    :param subject_alternative_names: Additional names, may be empty
    :param str token: Idempotency token
    :param list tags: Tags for the certificate
    :returns: The certificate ARN
    :rtype: str

    """

    request = {
        'DomainName': domain_name,
        'ValidationMethod': 'DNS',
        'IdempotencyToken': token,
        'Tags': tags,
    }

    if subject_alternative_names:
        request['SubjectAlternativeNames'] = list(subject_alternative_names)

    arn = aws_call(acm.request_certificate, **request)['CertificateArn']
    logger.info('Requested certificate %s for %s', arn, domain_name)
    return arn


def describe_certificate(acm, arn, /):
    return aws_call(acm.describe_certificate, CertificateArn=arn)['Certificate']


def wait_for_validation_options(acm, arn, expected_names, deadline, random, /):
    """
    Wait until ACM has generated a validation record for every expected name

    ACM fills in the validation options asynchronously and not all at once.

    :param acm: ACM client
    :param str arn: The certificate ARN
    :param expected_names: Every domain name the certificate validates
    :param Deadline deadline: The invocation deadline
    :param random: Returns a float in [0, 1), for jitter
    :returns: The certificate's DomainValidationOptions
    :rtype: list

    """

    expected = {name.lower() for name in expected_names}

    for attempt in range(ATTEMPTS_VALIDATION_OPTIONS_READY):
        options = describe_certificate(acm, arn).get('DomainValidationOptions', [])

        ready = {
            option['DomainName'].lower() for option in options
            if option.get('ResourceRecord') and option['DomainName'].lower() in expected
        }

        if ready == expected:
            return options

        logger.info('%i of %i validation records are ready for %s', len(ready), len(expected), arn)

        # Exponential backoff with jitter
        base = 2 ** attempt
        deadline.sleep((random() * base * 50 + base * 150) / 1000)

    raise FatalError(f'resource validation records are not ready after {ATTEMPTS_VALIDATION_OPTIONS_READY} tries')


def wait_for_certificate_validated(acm, arn, deadline, /):
    """
    Wait until a certificate is issued

    :param acm: ACM client
    :param str arn: The certificate ARN
    :param Deadline deadline: The invocation deadline

    """

    for attempt in range(ATTEMPTS_CERTIFICATE_VALIDATED):
        if attempt:
            deadline.sleep(DELAY_CERTIFICATE_VALIDATED_IN_S)

        certificate = describe_certificate(acm, arn)
        status = certificate.get('Status')

        if status == 'ISSUED':
            logger.info('Certificate %s is issued', arn)
            return

        if status in FAILED_STATUSES:
            raise FatalError(certificate.get('FailureReason', f'Certificate {arn} is {status}'))

    raise FatalError(f'Certificate {arn} was not validated after {ATTEMPTS_CERTIFICATE_VALIDATED} attempts')


def wait_until_unused(acm, arn, deadline, /):
    """
    Wait until a certificate is no longer attached to anything

    A certificate still used by a load balancer listener or distribution cannot be deleted.

    :param acm: ACM client
    :param str arn: The certificate ARN
    :param Deadline deadline: The invocation deadline
    :returns: The certificate description, or None if the certificate does not exist
    :rtype: dict or None

    """

    for attempt in range(ATTEMPTS_CERTIFICATE_NOT_IN_USE):
        if attempt:
            deadline.sleep(DELAY_CERTIFICATE_NOT_IN_USE_IN_S)

        try:
            certificate = describe_certificate(acm, arn)
        except CertificateNotFound:
            logger.info('Certificate %s does not exist', arn)
            return None

        in_use_by = certificate.get('InUseBy', [])
        if not in_use_by:
            return certificate

        logger.info('Certificate %s is in use by %s', arn, ', '.join(in_use_by))

    raise FatalError(f'Certificate still in use after checking for {ATTEMPTS_CERTIFICATE_NOT_IN_USE} attempts.')


def delete_certificate(acm, arn, /):
    try:
        aws_call(acm.delete_certificate, CertificateArn=arn)
        logger.info('Deleted certificate %s', arn)
    except CertificateNotFound:
        logger.info('Certificate %s is already deleted', arn)
