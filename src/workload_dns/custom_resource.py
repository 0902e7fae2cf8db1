"""
The CloudFormation custom resource protocol

CloudFormation invokes a handler with an event, and waits for a response document to be
PUT to the event's ResponseURL. If no response arrives CloudFormation waits for an hour,
so a response is sent even when the reconciliation fails or runs out of time.

"""

import json
import logging
import random
import concurrent.futures
from urllib.request import Request, urlopen

from boto3 import client

from workload_dns.deadline import Deadline
from workload_dns.settings import DEADLINE_SECONDS, RESPONSE_MARGIN_SECONDS

logger = logging.getLogger()
logger.setLevel(logging.INFO)

SUCCESS = 'SUCCESS'
FAILED = 'FAILED'


class Invocation:
    """
    Everything a reconciliation needs for one invocation

    Nothing is kept between invocations.

    :param dict event: The custom resource event
    :param context: The Lambda context
    :param Deadline deadline: When the invocation must report back
    :param client_factory: Creates boto3 clients
    :param random: Returns a float in [0, 1), for backoff jitter

    """

    def __init__(self, event, context, deadline, client_factory=client, random=random.random):
        self.event = event
        self.context = context
        self.deadline = deadline
        self.client_factory = client_factory
        self.random = random

        self.request_type = event['RequestType']
        self.props = event['ResourceProperties']
        self.old_props = event.get('OldResourceProperties', {})

        # By default the physical resource id is unchanged
        self.physical_resource_id = event.get('PhysicalResourceId')
        self.data = {}


def send_response(event, context, status, physical_resource_id=None, data=None, reason=None):
    """
    Send a response to CloudFormation

    :param dict event: The custom resource event
    :param context: The Lambda context
    :param str status: SUCCESS or FAILED
    :param str physical_resource_id: The id of the resource, the log stream name if None
    :param dict data: Attributes available to GetAtt
    :param str reason: Reason for a failure

    """

    body = {
        'Status': status,
        'PhysicalResourceId': physical_resource_id or context.log_stream_name,
        'StackId': event['StackId'],
        'RequestId': event['RequestId'],
        'LogicalResourceId': event['LogicalResourceId'],
    }

    if reason is not None:
        body['Reason'] = reason
    if data:
        body['Data'] = data

    logger.info(body)

    # The presigned url is for an empty content-type
    response = urlopen(Request(event['ResponseURL'], json.dumps(body).encode(), {'content-type': ''}, method='PUT'))

    if response.status != 200:
        raise Exception(response)


def run(event, context, reconcile, activity, /, timeout=DEADLINE_SECONDS, **options):
    """
    Run a reconciliation and report the result to CloudFormation

    The reconciliation races the deadline. If the deadline wins, FAILED is reported
    straight away and the deadline is cancelled, which stops the reconciliation at its
    next wait.

    :param dict event: The custom resource event
    :param context: The Lambda context
    :param reconcile: Called with the :class:`Invocation`
    :param str activity: What the reconciliation does, for the timeout message
    :param float timeout: The longest the reconciliation may take
    :param options: Passed to :class:`Invocation`, and ``clock``/``sleep`` to :class:`Deadline`

    """

    logger.info(event)

    deadline = Deadline.for_lambda(
        context, timeout, activity, RESPONSE_MARGIN_SECONDS,
        **{key: options.pop(key) for key in ['clock', 'sleep'] if key in options}
    )
    invocation = Invocation(event, context, deadline, **options)

    status = SUCCESS
    reason = None

    executor = concurrent.futures.ThreadPoolExecutor(max_workers=1)
    try:
        future = executor.submit(reconcile, invocation)
        done, _ = concurrent.futures.wait([future], timeout=deadline.remaining())

        if not done:
            deadline.cancel()
            logger.error(deadline.message)
            status, reason = FAILED, deadline.message
        else:
            future.result()

    except Exception as ex:
        logger.exception('')
        status, reason = FAILED, str(ex)
    finally:
        executor.shutdown(wait=False)

    if reason is not None:
        reason = f'{reason} (Log: {context.log_group_name}/{context.log_stream_name})'

    send_response(event, context, status, invocation.physical_resource_id, invocation.data or None, reason)
