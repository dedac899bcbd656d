"""A thread that can be stopped."""

import logging
import threading
from .exceptions import TimeoutExpiredError


class StoppableWorkerThread(threading.Thread):
    """A worker thread that calls a worker function periodically.

    This class takes a single callable function and calls that function
    with *args and **kwargs in a loop with a configurable delay between each
    invocation.  There is a public stop() method that will end the thread
    after the next time the callable function returns.  The delay is an
    interruptible wait, so stopping never has to wait out a full interval.
    """

    def __init__(self, routine, timeout=0.1, args=None, kwargs=None, name=None):
        self._routine = routine
        self._args = args
        self._kwargs = kwargs
        self._wait = timeout
        self._stop_condition = threading.Event()
        self._running = threading.Event()
        self._logger = logging.getLogger(__name__)

        if self._args is None:
            self._args = []

        if self._kwargs is None:
            self._kwargs = {}

        super(StoppableWorkerThread, self).__init__(name=name)

        self.daemon = True

    def run(self):
        """Call the routine in a loop until a stop is signaled."""

        try:
            while not self._stop_condition.is_set():
                self._running.set()

                self._routine(*self._args, **self._kwargs)

                if self._stop_condition.wait(self._wait):
                    return
        except Exception:  #pylint:disable=broad-except;Background thread has nowhere to raise to
            self._logger.exception("Exception occurred in background worker thread")

    def wait_running(self, timeout=None):
        """Wait for the thread to pass control to its routine.

        Args:
            timeout (float): The maximum amount of time to wait
        """

        flag = self._running.wait(timeout)

        if flag is False:
            raise TimeoutExpiredError("Timeout waiting for thread to start running")

    def stop(self, timeout=None, force=False):
        """Stop the worker thread and synchronously wait for it to finish.

        Args:
            timeout (float): The maximum time to wait for the thread to stop
                before raising a TimeoutExpiredError.
            force (bool): If true and the thread does not exit in timeout seconds
                no error is raised since the thread is marked as daemon and will
                be killed when the process exits.
        """

        self.signal_stop()
        self.wait_stopped(timeout, force)

    def signal_stop(self):
        """Signal that the worker thread should stop but don't wait."""

        self._stop_condition.set()

    def wait_stopped(self, timeout=None, force=False):
        """Wait for the thread to stop.

        You must have previously called signal_stop or this function will hang.
        """

        self.join(timeout)

        if self.is_alive() and force is False:
            raise TimeoutExpiredError("Error waiting for background thread to exit", timeout=timeout)
