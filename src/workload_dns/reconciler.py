"""
The state machine every reconciliation runs through

A workflow implements one method per state. The CloudFormation request type only picks the
direction: Create and Update converge towards the desired resources, Delete tears them down.

"""

import enum
import logging

logger = logging.getLogger(__name__)


class State(enum.Enum):
    VALIDATING = 'Validating'
    REQUESTING = 'Requesting'
    AWAITING_VALIDATION_OPTIONS = 'AwaitingValidationOptions'
    RECONCILING = 'Reconciling'
    AWAITING_PROPAGATION = 'AwaitingPropagation'
    DONE = 'Done'
    FAILED = 'Failed'


class Direction(enum.Enum):
    CONVERGE = 'converge'
    TEARDOWN = 'teardown'


class Outcome(enum.Enum):
    # Move on to the next state
    PROCEED = 'proceed'
    # Already in the desired state, nothing more to do
    CONVERGED = 'converged'


TRANSITIONS = {
    Direction.CONVERGE: {
        State.VALIDATING: State.REQUESTING,
        State.REQUESTING: State.AWAITING_VALIDATION_OPTIONS,
        State.AWAITING_VALIDATION_OPTIONS: State.RECONCILING,
        State.RECONCILING: State.AWAITING_PROPAGATION,
        State.AWAITING_PROPAGATION: State.DONE,
    },
    Direction.TEARDOWN: {
        State.VALIDATING: State.RECONCILING,
        State.RECONCILING: State.AWAITING_PROPAGATION,
        State.AWAITING_PROPAGATION: State.DONE,
    },
}


def direction_for(request_type, /):
    if request_type in ['Create', 'Update']:
        return Direction.CONVERGE
    if request_type == 'Delete':
        return Direction.TEARDOWN
    raise RuntimeError(f'Unsupported request type {request_type}')


class Workflow:
    """
    The steps of one reconciliation

    Each step returns an :class:`Outcome`; the default is to do nothing and proceed.
    :meth:`finish` runs after the last step, unless a step already returned CONVERGED.

    """

    direction = Direction.CONVERGE

    def validate(self):
        return Outcome.PROCEED

    def request(self):
        return Outcome.PROCEED

    def await_validation_options(self):
        return Outcome.PROCEED

    def reconcile(self):
        return Outcome.PROCEED

    def await_propagation(self):
        return Outcome.PROCEED

    def finish(self):
        pass


STEPS = {
    State.VALIDATING: Workflow.validate,
    State.REQUESTING: Workflow.request,
    State.AWAITING_VALIDATION_OPTIONS: Workflow.await_validation_options,
    State.RECONCILING: Workflow.reconcile,
    State.AWAITING_PROPAGATION: Workflow.await_propagation,
}


class Machine:
    """
    Drives a workflow from VALIDATING to DONE

    Any exception moves the machine to FAILED and is raised to the caller.

    :param Workflow workflow: The workflow to run

    """

    def __init__(self, workflow):
        self.workflow = workflow
        self.state = State.VALIDATING
        self.history = [self.state]

    def _move(self, state):
        logger.info('%s: %s -> %s', type(self.workflow).__name__, self.state.value, state.value)
        self.state = state
        self.history.append(state)

    def run(self):
        transitions = TRANSITIONS[self.workflow.direction]

        try:
            while self.state is not State.DONE:
                outcome = getattr(self.workflow, STEPS[self.state].__name__)()

                if outcome is Outcome.CONVERGED:
                    self._move(State.DONE)
                    return self.state

                self._move(transitions[self.state])

            self.workflow.finish()
        except Exception:
            self._move(State.FAILED)
            raise

        return self.state
