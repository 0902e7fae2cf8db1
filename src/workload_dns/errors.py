"""
Error types raised by the reconciliation handlers

AWS service errors are classified once, where the call is made, by :func:`aws_call`.
Everything above that boundary only deals with these types.

"""

import re

from botocore.exceptions import ClientError


RECORD_NOT_FOUND = re.compile(r'.*Tried to delete resource record set.*but it was not found.*')
RECORD_VALUES_MISMATCH = re.compile(
    r'.*Tried to delete resource record set.*but the values provided do not match the current values.*'
)
STACK_UPDATE_IN_PROGRESS = re.compile(r'^Stack.*is in UPDATE_IN_PROGRESS state and can not be updated')
CUSTOM_DOMAIN_ALREADY_ASSOCIATED = re.compile(r'.*is already associated with.*')
CUSTOM_DOMAIN_NOT_FOUND = re.compile(r'.*No custom domain .* found for the provided service.*')


class ReconcileError(Exception):
    """Base class for errors reported back to CloudFormation"""


class ConflictError(ReconcileError):
    """A name is owned by someone else"""


class NotFoundError(ReconcileError):
    """The resource is already gone"""


class RetryableError(ReconcileError):
    """Another writer or attachment is holding the resource; waiting may clear it"""


class FatalError(ReconcileError):
    """Anything that will not resolve by retrying"""


class UnrecognizedDomainError(ReconcileError):
    """A name is in none of the environment, application or root zones"""


class RecordNotFound(NotFoundError):
    pass


class RecordValuesMismatch(ConflictError):
    pass


class CertificateNotFound(NotFoundError):
    pass


class CertificateInUse(RetryableError):
    pass


class StackUpdateInProgress(RetryableError):
    pass


class CustomDomainAlreadyAssociated(ConflictError):
    pass


class CustomDomainNotFound(NotFoundError):
    pass


def classify(exception, /):
    """
    Translate a botocore ClientError into a ReconcileError

    :param ClientError exception: The error returned by the AWS API
    :rtype: ReconcileError

    """

    error = exception.response.get('Error', {})
    code = error.get('Code', '')
    message = error.get('Message', str(exception))

    if code == 'InvalidChangeBatch' or 'Tried to delete resource record set' in message:
        if RECORD_NOT_FOUND.match(message):
            return RecordNotFound(message)
        if RECORD_VALUES_MISMATCH.match(message):
            return RecordValuesMismatch(message)

    if code == 'InvalidRequestException' and CUSTOM_DOMAIN_ALREADY_ASSOCIATED.match(message):
        return CustomDomainAlreadyAssociated(message)

    if CUSTOM_DOMAIN_NOT_FOUND.match(message):
        return CustomDomainNotFound(message)

    if code == 'ResourceNotFoundException':
        return CertificateNotFound(message)

    if code == 'ResourceInUseException':
        return CertificateInUse(message)

    if code == 'ValidationError' and STACK_UPDATE_IN_PROGRESS.match(message):
        return StackUpdateInProgress(message)

    return FatalError(str(exception))


def aws_call(method, /, **kwargs):
    """
    Call a boto3 client method, raising classified errors

    :param method: The bound client method, e.g. ``route53.change_resource_record_sets``
    :param kwargs: The API request parameters
    :returns: The API response

    """

    try:
        return method(**kwargs)
    except ClientError as exception:
        raise classify(exception) from exception


def aws_pages(paginator, /, **kwargs):
    """
    Iterate the pages of a boto3 paginator, raising classified errors

    Each page is a separate API call, so errors surface while iterating.

    :param paginator: e.g. ``tagging.get_paginator('get_resources')``
    :param kwargs: The API request parameters
    :returns: An iterator of API responses

    """

    try:
        yield from paginator.paginate(**kwargs)
    except ClientError as exception:
        raise classify(exception) from exception
