"""
Workload membership of an environment stack

The environment stack has a parameter per shared feature (e.g. ``ALBWorkloads``) holding the
comma separated names of the workloads that need it, and an ``Aliases`` parameter holding a
JSON map of workload to aliases. Each workload adds or removes only its own entries.

Several workloads may be deploying at the same time. CloudFormation refuses an update while
another is in progress, which is what serializes them: the refused workload waits, then
recomputes its change from the stack as it is now.

"""

import json
import logging

from workload_dns.errors import FatalError, StackUpdateInProgress, aws_call
from workload_dns.settings import ATTEMPTS_STACK_CONCURRENT_UPDATE, ATTEMPTS_STACK_UPDATE, DELAY_STACK_UPDATE_IN_S

logger = logging.getLogger(__name__)

ALIASES_PARAMETER = 'Aliases'
EXECUTION_ROLE_OUTPUT = 'CFNExecutionRoleARN'


def describe_stack(cfn, stack_name, /):
    stacks = aws_call(cfn.describe_stacks, StackName=stack_name).get('Stacks', [])
    if len(stacks) != 1:
        raise FatalError(f'Cannot find environment stack {stack_name}')
    return stacks[0]


def exported_values(stack, /):
    """
    The stack outputs as a dict

    :param dict stack: A stack from DescribeStacks
    :rtype: dict

    """

    return {output['OutputKey']: output['OutputValue'] for output in stack.get('Outputs', [])}


def members(value, /):
    return [workload for workload in (value or '').split(',') if workload]


def aliases_map(value, /):
    try:
        return json.loads(value or '{}')
    except ValueError:
        raise FatalError(f'Cannot parse {value} into JSON format.')


def update_aliases(value, workload, aliases, /):
    """
    Set a workload's aliases in the Aliases parameter value

    :param str value: The current parameter value
    :param str workload: The workload name
    :param list aliases: The workload's aliases, empty to remove the workload
    :returns: The new parameter value, an empty string when no workload has aliases
    :rtype: str

    """

    services = aliases_map(value)

    if aliases:
        services[workload] = list(aliases)
    else:
        services.pop(workload, None)

    if not services:
        return ''
    return json.dumps(services, separators=(',', ':'))


def parameter_changes(parameters, workload, aliases, wanted, /):
    """
    Work out the new stack parameters for a workload

    Only parameters the stack already has are considered.

    :param list parameters: The stack's current Parameters
    :param str workload: The workload name
    :param list aliases: The workload's aliases
    :param wanted: The parameters the workload should be a member of
    :returns: The new Parameters, or None if nothing needs to change
    :rtype: list or None

    """

    wanted = set(wanted)
    changed = False
    updated = []

    for parameter in parameters:
        key = parameter['ParameterKey']
        value = parameter.get('ParameterValue', '')

        if key == ALIASES_PARAMETER:
            if aliases_map(value).get(workload, []) != list(aliases):
                value = update_aliases(value, workload, aliases)
                changed = True

        else:
            values = members(value)

            if key in wanted and workload not in values:
                logger.info('Adding %s to %s', workload, key)
                value = ','.join(values + [workload])
                changed = True
            elif key not in wanted and workload in values:
                logger.info('Removing %s from %s', workload, key)
                value = ','.join(member for member in values if member != workload)
                changed = True

        updated.append({'ParameterKey': key, 'ParameterValue': value})

    return updated if changed else None


def wait_for_stack_update(cfn, stack_name, deadline, /, require_complete=True):
    """
    Wait until a stack is no longer being updated

    :param cfn: CloudFormation client
    :param str stack_name: The stack
    :param Deadline deadline: The invocation deadline
    :param bool require_complete: The update must have succeeded, rather than just finished
    :returns: The stack
    :rtype: dict

    """

    for attempt in range(ATTEMPTS_STACK_UPDATE):
        if attempt:
            deadline.sleep(DELAY_STACK_UPDATE_IN_S)

        stack = describe_stack(cfn, stack_name)
        status = stack['StackStatus']

        if status.endswith('_IN_PROGRESS'):
            logger.info('Stack %s is %s', stack_name, status)
            continue

        if require_complete and status != 'UPDATE_COMPLETE':
            raise FatalError(f'Stack {stack_name} update did not complete, it is {status}')

        return stack

    raise FatalError(f'Stack {stack_name} is still updating after {ATTEMPTS_STACK_UPDATE} attempts')


def control_environment(cfn, stack_name, workload, aliases, parameters, deadline, /):
    """
    Make a workload a member of exactly the given environment stack parameters

    :param cfn: CloudFormation client
    :param str stack_name: The environment stack
    :param str workload: The workload name
    :param list aliases: The workload's aliases
    :param list parameters: The parameter keys the workload should be in
    :param Deadline deadline: The invocation deadline
    :returns: The environment stack outputs
    :rtype: dict

    """

    aliases = aliases or []
    parameters = parameters or []

    for attempt in range(ATTEMPTS_STACK_CONCURRENT_UPDATE):
        stack = describe_stack(cfn, stack_name)
        outputs = exported_values(stack)

        updated = parameter_changes(stack.get('Parameters', []), workload, aliases, parameters)
        if updated is None:
            logger.info('Stack %s parameters are already up to date for %s', stack_name, workload)
            return outputs

        request = {
            'StackName': stack_name,
            'Parameters': updated,
            'UsePreviousTemplate': True,
            'Capabilities': stack.get('Capabilities', []),
        }
        if EXECUTION_ROLE_OUTPUT in outputs:
            request['RoleARN'] = outputs[EXECUTION_ROLE_OUTPUT]

        try:
            aws_call(cfn.update_stack, **request)
        except StackUpdateInProgress:
            logger.info('Another update of %s is in progress, waiting for it to finish', stack_name)
            wait_for_stack_update(cfn, stack_name, deadline, require_complete=False)
            continue

        logger.info('Updating stack %s for %s', stack_name, workload)
        return exported_values(wait_for_stack_update(cfn, stack_name, deadline))

    raise FatalError(
        f'Stack {stack_name} was updated by another workload {ATTEMPTS_STACK_CONCURRENT_UPDATE} times in a row'
    )
