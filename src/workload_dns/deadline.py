"""
A cancellable wall clock budget for one invocation

Every loop that waits on AWS sleeps through :meth:`Deadline.sleep`, so expiring or
cancelling the deadline stops all of them at their next wait.

"""

import threading
import time


class DeadlineExceeded(Exception):
    pass


class Deadline:
    """
    The time left before the invocation must report back to CloudFormation

    :param float seconds: Length of the budget
    :param str activity: What the invocation is doing, used in the failure message
    :param clock: Monotonic clock returning seconds
    :param sleep: Optional replacement for waiting, used by tests

    """

    def __init__(self, seconds, activity, clock=time.monotonic, sleep=None):
        self.seconds = seconds
        self.activity = activity
        self._clock = clock
        self._sleep = sleep
        self._expires_at = clock() + seconds
        self._cancelled = threading.Event()

    @classmethod
    def for_lambda(cls, context, seconds, activity, margin, **kwargs):
        """
        Create a deadline that also fits within the Lambda's own timeout

        :param context: The Lambda context
        :param float seconds: The longest the invocation should take
        :param str activity: What the invocation is doing
        :param float margin: Seconds to keep back for sending the response

        """

        remaining = context.get_remaining_time_in_millis() / 1000 - margin
        return cls(max(min(seconds, remaining), 0), activity, **kwargs)

    @property
    def message(self):
        return f'Lambda took longer than {round(self.seconds / 60, 1):g} minutes to {self.activity}'

    def remaining(self):
        return max(self._expires_at - self._clock(), 0.0)

    def expired(self):
        return self._cancelled.is_set() or self.remaining() <= 0

    def cancel(self):
        self._cancelled.set()

    def check(self):
        if self.expired():
            raise DeadlineExceeded(self.message)

    def sleep(self, seconds):
        """
        Wait before the next attempt

        Raises DeadlineExceeded instead of waiting if the deadline would pass first,
        or as soon as the deadline is cancelled.

        """

        self.check()

        if seconds >= self.remaining():
            raise DeadlineExceeded(self.message)

        if self._sleep is not None:
            self._sleep(seconds)
        elif self._cancelled.wait(seconds):
            raise DeadlineExceeded(self.message)
