# Interrupt.py - cooperative interrupt flag fed by OS signals

import logging
import os
import queue
import signal
import threading

logger = logging.getLogger(__name__)


class InterruptFlag:
    """Process-wide "stop what you are doing" flag."""

    def __init__(self):
        self._set = False
        self.lock = threading.Lock()

    def set(self, value=True):
        with self.lock:
            self._set = value

    def clear(self):
        self.set(False)

    def is_set(self) -> bool:
        with self.lock:
            return self._set


def default_signals():
    sigs = [signal.SIGINT]
    if hasattr(signal, "SIGTERM"):
        sigs.append(signal.SIGTERM)
    return sigs


class SignalListener:
    """
    Signal handlers only queue the signal number; a background thread sets the
    interpreter's interrupt flag, resets the terminal and asks the interpreter's
    interrupt strategy whether the process should really go down.
    """

    def __init__(self, interp, signals=None):
        self.interp = interp
        self.signals = list(signals or default_signals())
        self.pending = queue.Queue()
        self.previous = {}
        self.quitting = False
        self.thread = None

    def _handle(self, signum, frame):
        if self.quitting:
            # hand the signal to whoever had it before us
            self.restore()
            signal.raise_signal(signum)
            return
        self.pending.put(signum)

    def start(self):
        # handlers can only be installed from the main thread
        for sig in self.signals:
            self.previous[sig] = signal.signal(sig, self._handle)

        self.thread = threading.Thread(target=self._listen, name="interrupt-listener", daemon=True)
        self.thread.start()
        return self

    def stop(self):
        self.pending.put(None)
        self.restore()

    def restore(self):
        for sig, handler in self.previous.items():
            # None: the old handler was not installed from Python
            signal.signal(sig, signal.SIG_DFL if handler is None else handler)
        self.previous = {}

    def _listen(self):
        while True:
            signum = self.pending.get()
            if signum is None:
                return

            logger.debug("got signal %s", signum)
            self.interp.set_interrupted(True)
            self.interp.reset_terminal()

            if self.interp.interrupt(signum):
                logger.debug("signal %s: quitting", signum)
                self.quitting = True
                os.kill(os.getpid(), signum)
                return
