#!/usr/bin/env python3
# process_subsystem.py - asynchronous tasks started by "go" and their admission barrier

import logging
import threading
import time

logger = logging.getLogger(__name__)

# how often blocked callers look at the interrupt flag
POLL_INTERVAL = 0.05


class Task:
    def __init__(self, tid, command):
        self.tid = tid
        self.command = command
        self.started = time.time()
        self.thread = None

    def __str__(self):
        return f"[{self.tid}] {time.time() - self.started:8.2f}s  {self.command}"


class AdmissionBarrier:
    """
    Counts asynchronous dispatches. With a capacity, admit() holds the caller
    while that many members are still running.
    """

    def __init__(self, capacity=0):
        self.capacity = max(capacity, 0)
        self.in_flight = 0
        self.cond = threading.Condition()

    def admit(self, interrupted=lambda: False) -> bool:
        with self.cond:
            while self.capacity and self.in_flight >= self.capacity:
                if interrupted():
                    return False
                self.cond.wait(POLL_INTERVAL)
            self.in_flight += 1
            return True

    def done(self):
        with self.cond:
            self.in_flight -= 1
            self.cond.notify_all()

    def drain(self, interrupted=lambda: False) -> bool:
        with self.cond:
            while self.in_flight > 0:
                if interrupted():
                    return False
                self.cond.wait(POLL_INTERVAL)
            return True


class TaskController:
    def __init__(self):
        self.tasks = {}
        self.next_tid = 1
        self.barrier = None
        self.lock = threading.Lock()

    # -----------------------
    # Barrier
    # -----------------------
    def open_barrier(self, capacity=0):
        with self.lock:
            if self.barrier is not None:
                return False
            self.barrier = AdmissionBarrier(capacity)
        logger.debug("admission barrier opened, capacity %d", capacity)
        return True

    def close_barrier(self, interrupted=lambda: False):
        with self.lock:
            barrier = self.barrier
        if barrier is None:
            return None

        drained = barrier.drain(interrupted)
        if drained:
            with self.lock:
                if self.barrier is barrier:
                    self.barrier = None
            logger.debug("admission barrier drained")
        return drained

    # -----------------------
    # Tasks
    # -----------------------
    def start(self, command, target, interrupted=lambda: False):
        """
        Run target() on its own thread. Returns the Task, or None if the
        caller was interrupted while waiting for admission.
        """
        with self.lock:
            barrier = self.barrier

        if barrier is not None and not barrier.admit(interrupted):
            return None

        with self.lock:
            task = Task(self.next_tid, command)
            self.next_tid += 1
            self.tasks[task.tid] = task

        def runner():
            try:
                target()
            finally:
                with self.lock:
                    self.tasks.pop(task.tid, None)
                if barrier is not None:
                    barrier.done()
                logger.debug("task %d finished", task.tid)

        task.thread = threading.Thread(target=runner, name=f"go-{task.tid}", daemon=True)
        logger.debug("task %d started: %s", task.tid, command)
        task.thread.start()
        return task

    def running(self):
        with self.lock:
            return [self.tasks[tid] for tid in sorted(self.tasks)]
