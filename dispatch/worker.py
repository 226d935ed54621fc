"""
Queue group worker.

A worker consumes the request streams of one entity as a member of that
entity's consumer group, runs the matching handler under a deadline and
pushes the reply envelope back to the requester.

Entries that were read but never acknowledged (a failed reply, a crashed
consumer) stay pending in the group and are claimed again by any member
once they have been idle for ``reclaim_idle_ms``.
"""
import asyncio
import json
import logging
import socket
import time
import uuid
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from dispatch.broker import Broker
from dispatch.subjects import OPERATIONS, group_for, subject_for
from errors.exceptions import RequestTimeoutError, ValidationError
from errors.handlers import failure_envelope, handle_errors

Handler = Callable[[Any], Awaitable[Any]]

DEFAULT_BATCH_SIZE = 1
DEFAULT_RECLAIM_IDLE_MS = 60000
IDLE_DELAY_SECONDS = 0.05
RETRY_DELAY_SECONDS = 1.0
BACKGROUND_DRAIN_SECONDS = 5.0


def default_consumer_name(entity: str) -> str:
    return f"{entity}-{socket.gethostname()}-{uuid.uuid4().hex[:8]}"


def entry_age_seconds(entry_id: str, now: Optional[float] = None) -> float:
    """Seconds since a stream entry was added, from the millisecond part of its id."""
    published_ms = int(entry_id.split('-', 1)[0])
    return (now if now is not None else time.time()) - published_ms / 1000


class Worker(ABC):
    """
    Base class for entity workers.

    Subclasses set ``entity`` and map operations to handler coroutines in
    ``handlers()``. A handler receives the decoded request body and returns
    the reply payload, or raises a ServiceError.
    """

    entity: str = ""

    def __init__(self, broker: Broker, prefix: str, deadline: float,
                 consumer: Optional[str] = None, block_ms: Optional[int] = 1000,
                 batch_size: int = DEFAULT_BATCH_SIZE, max_age: Optional[float] = None,
                 reclaim_idle_ms: Optional[int] = DEFAULT_RECLAIM_IDLE_MS,
                 logger: Optional[logging.Logger] = None, audit_logger=None):
        """
        Initialize the worker.

        Args:
            broker: Broker used to read requests and push replies
            prefix: Subject prefix shared with the gateway
            deadline: Seconds a handler may run before the request times out
            consumer: Consumer name inside the group (generated when omitted)
            block_ms: How long one poll blocks waiting for requests; None polls
                without blocking and idles briefly between empty polls
            batch_size: Maximum number of requests read per poll
            max_age: Requests older than this many seconds are answered with a
                timeout without running (the caller has stopped waiting)
            reclaim_idle_ms: Idle time after which pending entries of any
                consumer in the group are claimed; None disables reclaiming
            logger: Logger instance (defaults to the module logger)
            audit_logger: Optional AuditLogger for lifecycle and state changes
        """
        self.broker = broker
        self.prefix = prefix
        self.deadline = deadline
        self.group = group_for(prefix, self.entity)
        self.consumer = consumer or default_consumer_name(self.entity)
        self.block_ms = block_ms
        self.batch_size = batch_size
        self.max_age = max_age
        self.reclaim_idle_ms = reclaim_idle_ms
        self.logger = logger or logging.getLogger(__name__)
        self.audit_logger = audit_logger

        self.subjects: Dict[str, str] = {
            subject_for(prefix, self.entity, operation): operation
            for operation in OPERATIONS[self.entity]
        }
        self._stop_event: Optional[asyncio.Event] = None
        self._task: Optional[asyncio.Task] = None
        self._background: Set[asyncio.Future] = set()
        self._next_reclaim = 0.0

    @abstractmethod
    def handlers(self) -> Dict[str, Handler]:
        """Map every operation of the entity to its handler."""
        pass

    @property
    def name(self) -> str:
        return type(self).__name__

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def subscribe(self) -> None:
        """Join the entity's consumer group on every request subject."""
        for subject in self.subjects:
            await self.broker.ensure_group(subject, self.group)
        self.logger.info(f"{self.name} subscribed to {len(self.subjects)} subjects as "
                         f"{self.consumer} in {self.group}")

    async def start(self) -> None:
        """
        Subscribe and launch the consume loop. Returns once the loop is running.

        Raises:
            RuntimeError: If the worker was already started
        """
        if self._stop_event is not None:
            raise RuntimeError(f"{self.name} can only be started once")

        self._stop_event = asyncio.Event()
        await self.subscribe()
        self._task = asyncio.create_task(self._run(), name=f"{self.name}:{self.consumer}")

        if self.audit_logger:
            self.audit_logger.log_worker_started(self.name, self.group, self.consumer)

    async def stop(self) -> None:
        """
        Stop consuming. The batch in flight and background work are finished
        first, then the consumer leaves every group where it has nothing
        pending. Calling stop more than once is a no-op.
        """
        if self._stop_event is None or self._stop_event.is_set():
            return

        self._stop_event.set()
        if self._task is not None:
            await self._task
        await self.drain_background(timeout=BACKGROUND_DRAIN_SECONDS)

        for subject in self.subjects:
            try:
                if await self.broker.has_pending(subject, self.group, self.consumer):
                    self.logger.warning(f"{self.consumer} keeps pending entries on {subject}, "
                                        f"leaving them for reclaim")
                    continue
                await self.broker.remove_consumer(subject, self.group, self.consumer)
            except Exception as e:
                self.logger.warning(f"Failed to remove consumer {self.consumer} from {subject}: {e}")

        self.logger.info(f"{self.name} stopped")
        if self.audit_logger:
            self.audit_logger.log_worker_stopped(self.name, self.group, self.consumer)

    def run_in_background(self, coro: Awaitable[Any], description: str) -> asyncio.Future:
        """
        Run work that must not hold up the reply, such as notifications.

        The task is tracked until it finishes; failures are logged.
        """
        task = asyncio.ensure_future(coro)
        self._background.add(task)

        def log_outcome(done: asyncio.Future) -> None:
            self._background.discard(done)
            if done.cancelled():
                self.logger.warning(f"Background {description} was cancelled")
            elif done.exception() is not None:
                self.logger.warning(f"Background {description} failed: {done.exception()}")

        task.add_done_callback(log_outcome)
        return task

    async def drain_background(self, timeout: Optional[float] = None) -> None:
        """Wait for tracked background work to finish."""
        if not self._background:
            return
        _, pending = await asyncio.wait(set(self._background), timeout=timeout)
        if pending:
            self.logger.warning(f"{len(pending)} background tasks still running after {timeout}s")

    async def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                processed = await self._reclaim_if_due()
            except Exception as e:
                self.logger.error(f"{self.name} reclaim failed: {e}")
                processed = 0

            try:
                processed += await self.poll_once(block=self.block_ms)
            except Exception as e:
                self.logger.error(f"{self.name} poll failed: {e}")
                await asyncio.sleep(RETRY_DELAY_SECONDS)
                continue

            if not processed and self.block_ms is None:
                await asyncio.sleep(IDLE_DELAY_SECONDS)

    async def _reclaim_if_due(self) -> int:
        if self.reclaim_idle_ms is None:
            return 0
        now = time.monotonic()
        if now < self._next_reclaim:
            return 0
        self._next_reclaim = now + self.reclaim_idle_ms / 1000
        return await self.reclaim()

    async def poll_once(self, block: Optional[int] = None) -> int:
        """
        Read and process one batch of new requests.

        Args:
            block: Milliseconds to wait for requests, None to return immediately

        Returns:
            int: Number of requests answered and acknowledged
        """
        response = await self.broker.client.xreadgroup(
            self.group, self.consumer,
            {subject: '>' for subject in self.subjects},
            count=self.batch_size, block=block
        )

        processed = 0
        for subject, entries in response or []:
            for entry_id, fields in entries:
                if await self._handle_entry(subject, entry_id, fields):
                    processed += 1
        return processed

    async def reclaim(self) -> int:
        """
        Claim and process entries pending on any consumer of the group for
        longer than ``reclaim_idle_ms``.

        Returns:
            int: Number of reclaimed requests answered and acknowledged
        """
        processed = 0
        for subject in self.subjects:
            result = await self.broker.client.xautoclaim(
                subject, self.group, self.consumer,
                min_idle_time=self.reclaim_idle_ms or 0,
                start_id='0-0', count=self.batch_size
            )
            for entry_id, fields in result[1]:
                if entry_id is None or fields is None:
                    continue
                self.logger.info(f"Reclaimed {entry_id} on {subject}")
                if await self._handle_entry(subject, entry_id, fields):
                    processed += 1
        return processed

    async def _handle_entry(self, subject: str, entry_id: str, fields: Dict[str, str]) -> bool:
        try:
            await self._process(subject, entry_id, fields)
        except Exception as e:
            # Unacknowledged entries stay pending until reclaimed
            self.logger.error(f"Failed to answer {entry_id} on {subject}: {e}")
            return False
        return True

    async def _process(self, subject: str, entry_id: str, fields: Dict[str, str]) -> None:
        operation = self.subjects[subject]

        if self.max_age is not None and entry_age_seconds(entry_id) > self.max_age:
            self.logger.warning(f"Dropping {self.entity}.{operation} {entry_id}: older than {self.max_age}s")
            envelope = failure_envelope(
                RequestTimeoutError(message=f"{self.entity}.{operation} expired before processing"))
        else:
            envelope = await self._invoke(operation, fields.get('data'))

        reply_to = fields.get('reply_to')
        if reply_to:
            await self.broker.reply(reply_to, envelope)
        else:
            self.logger.debug(f"No reply subject on {subject} entry {entry_id}")

        await self.broker.client.xack(subject, self.group, entry_id)

    @handle_errors
    async def _invoke(self, operation: str, raw: Optional[str]) -> Any:
        """
        Decode the request and run its handler under the deadline.

        On expiry the handler keeps running to completion in the background
        while the caller is answered with a timeout.
        """
        try:
            request = json.loads(raw)
        except (TypeError, ValueError):
            raise ValidationError("invalid.json.format")

        handler = self.handlers()[operation]
        task = asyncio.ensure_future(handler(request))
        try:
            return await asyncio.wait_for(asyncio.shield(task), timeout=self.deadline)
        except asyncio.TimeoutError:
            task.add_done_callback(self._abandoned(operation))
            raise RequestTimeoutError(message=f"{self.entity}.{operation} exceeded {self.deadline}s")

    def _abandoned(self, operation: str) -> Callable[[asyncio.Future], None]:
        def log_outcome(task: asyncio.Future) -> None:
            if task.cancelled():
                self.logger.warning(f"Abandoned {self.entity}.{operation} was cancelled")
            elif task.exception() is not None:
                self.logger.warning(f"Abandoned {self.entity}.{operation} failed: {task.exception()}")
            else:
                self.logger.info(f"Abandoned {self.entity}.{operation} completed after its deadline")
        return log_outcome
