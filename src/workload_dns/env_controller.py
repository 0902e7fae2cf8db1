"""
Adds and removes a workload from the environment stack's parameters

The resource's attributes are the environment stack's outputs, so a workload can reference
shared resources the environment only creates once some workload needs them.

"""

from workload_dns.clients import Clients
from workload_dns.custom_resource import run
from workload_dns.reconciler import Direction, Machine, Outcome, Workflow, direction_for
from workload_dns.stack import control_environment


class EnvironmentController(Workflow):
    """
    :param Invocation invocation: The custom resource invocation

    """

    def __init__(self, invocation):
        self.invocation = invocation
        self.direction = direction_for(invocation.request_type)

        props = invocation.props
        self.stack_name = props['EnvStack']
        self.workload = props['Workload']
        self.clients = Clients(invocation.client_factory)

    def reconcile(self):
        if self.direction is Direction.TEARDOWN:
            # The workload should not be in any parameter
            aliases, parameters = [], []
        else:
            aliases = self.invocation.props.get('Aliases') or []
            parameters = self.invocation.props.get('Parameters') or []

        self.invocation.data.update(control_environment(
            self.clients.cloudformation(), self.stack_name, self.workload, aliases, parameters,
            self.invocation.deadline
        ))

        if self.invocation.request_type == 'Create':
            # The misspelling is in the ids of existing resources
            self.invocation.physical_resource_id = f'envcontoller/{self.stack_name}/{self.workload}'

        return Outcome.PROCEED


def reconcile(invocation):
    Machine(EnvironmentController(invocation)).run()


def handler(event, context, **options):
    run(event, context, reconcile, 'update environment', **options)
