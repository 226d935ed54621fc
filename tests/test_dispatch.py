"""
Tests for the queue group workers over an in-memory Redis.

Requests are published with the gateway client and consumed with
``poll_once`` so each step runs to completion before the next.
"""
import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from dispatch.client import GatewayClient
from dispatch.comment_worker import CommentWorker
from dispatch.subjects import COMMENTS, TICKETS, group_for, subject_for
from dispatch.ticket_worker import TicketWorker
from dispatch.worker import DEFAULT_BATCH_SIZE, entry_age_seconds
from config.config_manager import NotificationConfig
from notifications.dispatcher import NotificationDispatcher

from conftest import make_ticket_request

PREFIX = "test"

VALID_TICKET = {
    'issuer': 'desk',
    'owner': 'alice',
    'subject': 'Card declined',
    'content': 'Payment failed twice',
    'importanceLevel': 'MEDIUM'
}


@pytest.fixture
def client(broker):
    return GatewayClient(broker, PREFIX, timeout=1.0)


@pytest.fixture
async def ticket_worker(broker, ticket_repository):
    worker = TicketWorker(broker, PREFIX, ticket_repository, consumer='tickets-1', block_ms=None)
    await worker.subscribe()
    return worker


@pytest.fixture
async def comment_worker(broker, comment_repository):
    worker = CommentWorker(broker, PREFIX, comment_repository, consumer='comments-1', block_ms=None)
    await worker.subscribe()
    return worker


async def roundtrip(client, worker, entity, operation, payload):
    reply_to = await client.publish_request(entity, operation, payload)
    assert await worker.poll_once() == 1
    return await client.await_reply(reply_to)


class TestWorkerSubscription:
    """Test subjects and consumer groups."""

    def test_subjects_cover_every_operation(self, broker, ticket_repository, comment_repository):
        tickets = TicketWorker(broker, PREFIX, ticket_repository)
        comments = CommentWorker(broker, PREFIX, comment_repository)

        assert set(tickets.subjects.values()) == {'create', 'load', 'update', 'delete', 'filter'}
        assert set(comments.subjects.values()) == {'create', 'load', 'update', 'delete'}
        assert tickets.group == group_for(PREFIX, TICKETS) == "test.tickets.workers"
        assert tickets.deadline == 5.0
        assert comments.deadline == 10.0

    def test_unknown_operation(self):
        with pytest.raises(ValueError):
            subject_for(PREFIX, COMMENTS, 'filter')

    @pytest.mark.asyncio
    async def test_subscribe_is_repeatable(self, ticket_worker):
        await ticket_worker.subscribe()
        assert await ticket_worker.poll_once() == 0

    @pytest.mark.asyncio
    async def test_poll_without_requests(self, ticket_worker):
        assert await ticket_worker.poll_once() == 0


class TestTicketWorker:
    """Test ticket handlers through the broker."""

    @pytest.mark.asyncio
    async def test_create_replies_with_id(self, client, ticket_worker):
        envelope = await roundtrip(client, ticket_worker, TICKETS, 'create', VALID_TICKET)

        assert set(envelope) == {'ok'}
        assert envelope['ok']['id'] > 0

    @pytest.mark.asyncio
    async def test_validation_error_reply(self, client, ticket_worker):
        envelope = await roundtrip(client, ticket_worker, TICKETS, 'create',
                                   dict(VALID_TICKET, issuer='  '))

        record = envelope['err']
        assert record['httpStatusClass'] == 400
        assert record['errors'][0]['code'] == "issuer.is_required"
        assert record['fingerprint']

    @pytest.mark.asyncio
    async def test_invalid_json(self, broker, client, ticket_worker):
        reply_to = "test.replies.raw"
        await broker.publish(subject_for(PREFIX, TICKETS, 'create'),
                             {'reply_to': reply_to, 'data': '{not json'})
        await ticket_worker.poll_once()

        envelope = await client.await_reply(reply_to)
        assert envelope['err']['errors'][0]['code'] == "invalid.json.format"
        assert envelope['err']['httpStatusClass'] == 400

    @pytest.mark.asyncio
    async def test_load_missing(self, client, ticket_worker):
        envelope = await roundtrip(client, ticket_worker, TICKETS, 'load', {'id': 404})
        assert envelope['err']['httpStatusClass'] == 404
        assert envelope['err']['errors'][0]['code'] == "ticket.not_found"

    @pytest.mark.asyncio
    async def test_update_and_delete_reply_null(self, client, ticket_worker):
        created = await roundtrip(client, ticket_worker, TICKETS, 'create', VALID_TICKET)
        ticket_id = created['ok']['id']

        updated = await roundtrip(client, ticket_worker, TICKETS, 'update', {
            'id': ticket_id, 'subject': 'Still declined', 'importanceLevel': 'HIGH', 'status': 'REPLIED'
        })
        deleted = await roundtrip(client, ticket_worker, TICKETS, 'delete', {'id': ticket_id})

        assert updated == {'ok': None}
        assert deleted == {'ok': None}

    @pytest.mark.asyncio
    async def test_filter_reply(self, client, ticket_worker):
        for _ in range(3):
            await roundtrip(client, ticket_worker, TICKETS, 'create', VALID_TICKET)

        envelope = await roundtrip(client, ticket_worker, TICKETS, 'filter',
                                   {'owner': 'alice', 'pageSize': 2})

        assert len(envelope['ok']['tickets']) == 2
        assert envelope['ok']['hasNextPage'] is True

    @pytest.mark.asyncio
    async def test_create_notifies_and_audits(self, broker, client, ticket_repository):
        notifier = Mock()
        notifier.ticket_created = AsyncMock(return_value=True)
        audit_logger = Mock()
        worker = TicketWorker(broker, PREFIX, ticket_repository, notifier=notifier,
                              audit_logger=audit_logger, consumer='audited', block_ms=None)
        await worker.subscribe()

        envelope = await roundtrip(client, worker, TICKETS, 'create', VALID_TICKET)

        await worker.drain_background()
        notifier.ticket_created.assert_awaited_once()
        ticket = notifier.ticket_created.await_args[0][0]
        assert ticket.id == envelope['ok']['id']
        audit_logger.log_ticket_created.assert_called_once_with(ticket.id, 'alice', 'MEDIUM')

    @pytest.mark.asyncio
    async def test_failed_create_does_not_notify(self, broker, client, ticket_repository):
        notifier = Mock()
        notifier.ticket_created = AsyncMock()
        worker = TicketWorker(broker, PREFIX, ticket_repository, notifier=notifier,
                              consumer='quiet', block_ms=None)
        await worker.subscribe()

        await roundtrip(client, worker, TICKETS, 'create', dict(VALID_TICKET, importanceLevel='NOPE'))
        notifier.ticket_created.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_entries_are_acknowledged(self, client, ticket_worker, redis_client):
        await roundtrip(client, ticket_worker, TICKETS, 'load', {'id': 1})

        pending = await redis_client.xpending(subject_for(PREFIX, TICKETS, 'load'), ticket_worker.group)
        assert pending['pending'] == 0


class TestDeadlines:
    """Test deadline handling."""

    @pytest.mark.asyncio
    async def test_slow_handler_times_out_but_completes(self, broker, client):
        finished = asyncio.Event()

        async def slow_insert(ticket):
            await asyncio.sleep(0.2)
            finished.set()
            return 1

        repository = Mock()
        repository.insert = slow_insert
        worker = TicketWorker(broker, PREFIX, repository, deadline=0.05,
                              consumer='slow', block_ms=None)
        await worker.subscribe()

        envelope = await roundtrip(client, worker, TICKETS, 'create', VALID_TICKET)

        assert envelope['err']['httpStatusClass'] == 408
        assert envelope['err']['errors'][0]['code'] == "request.timeout"
        await asyncio.wait_for(finished.wait(), timeout=1.0)


class TestCompetingConsumers:
    """Two workers in one group never both process a request."""

    @pytest.mark.asyncio
    async def test_each_request_processed_once(self, broker, client, ticket_repository):
        workers = [
            TicketWorker(broker, PREFIX, ticket_repository, consumer=f"w{i}", block_ms=None)
            for i in range(2)
        ]
        for worker in workers:
            await worker.subscribe()
        for worker in workers:
            worker.batch_size = 3

        reply_keys = [await client.publish_request(TICKETS, 'create', VALID_TICKET) for _ in range(10)]

        counts = [0, 0]
        while sum(counts) < 10:
            progressed = False
            for index, worker in enumerate(workers):
                processed = await worker.poll_once()
                counts[index] += processed
                progressed = progressed or processed > 0
            assert progressed

        assert sum(counts) == 10
        assert all(count > 0 for count in counts)
        for worker in workers:
            assert await worker.poll_once() == 0

        ids = [(await client.await_reply(key))['ok']['id'] for key in reply_keys]
        assert len(set(ids)) == 10


class TestWorkerLifecycle:
    """Test start and stop."""

    @pytest.mark.asyncio
    async def test_start_serves_requests_until_stopped(self, broker, client, redis_client,
                                                       ticket_repository):
        audit_logger = Mock()
        worker = TicketWorker(broker, PREFIX, ticket_repository, consumer='looping',
                              block_ms=None, audit_logger=audit_logger)
        await worker.start()
        assert worker.running

        reply_to = await client.publish_request(TICKETS, 'create', VALID_TICKET)
        for _ in range(100):
            if await redis_client.llen(reply_to):
                break
            await asyncio.sleep(0.02)
        envelope = await client.await_reply(reply_to)
        assert envelope['ok']['id'] > 0

        await worker.stop()
        assert not worker.running
        await worker.stop()

        audit_logger.log_worker_started.assert_called_once_with('TicketWorker', worker.group, 'looping')
        audit_logger.log_worker_stopped.assert_called_once()

        with pytest.raises(RuntimeError):
            await worker.start()


class TestCommentWorker:
    """Test comment handlers through the broker."""

    @pytest.mark.asyncio
    async def test_comment_lifecycle(self, client, ticket_worker, comment_worker):
        ticket = await roundtrip(client, ticket_worker, TICKETS, 'create', VALID_TICKET)
        ticket_id = ticket['ok']['id']

        created = await roundtrip(client, comment_worker, COMMENTS, 'create',
                                  {'ticketId': ticket_id, 'owner': 'bob', 'content': 'Checking'})
        comment_id = created['ok']['id']

        updated = await roundtrip(client, comment_worker, COMMENTS, 'update',
                                  {'id': comment_id, 'metadata': 'escalated'})
        loaded = await roundtrip(client, comment_worker, COMMENTS, 'load', {'id': comment_id})

        assert updated == {'ok': None}
        assert loaded['ok']['metadata'] == 'escalated'
        assert loaded['ok']['ticketId'] == ticket_id

        deleted = await roundtrip(client, comment_worker, COMMENTS, 'delete', {'id': comment_id})
        assert deleted == {'ok': None}

    @pytest.mark.asyncio
    async def test_comment_on_missing_ticket(self, client, comment_worker):
        envelope = await roundtrip(client, comment_worker, COMMENTS, 'create',
                                   {'ticketId': 31337, 'owner': 'bob', 'content': 'Hello?'})

        assert envelope['err']['httpStatusClass'] == 412
        assert envelope['err']['errors'][0]['code'] == "ticket.not_exists"


class TestNotificationsDoNotHoldReplies:
    """A slow notifier never turns a stored create into a failure."""

    @pytest.mark.asyncio
    async def test_hanging_publish_still_replies_ok(self, broker, client, ticket_repository, caplog):
        async def hang(subject, payload):
            await asyncio.sleep(5)

        notifier_broker = Mock()
        notifier_broker.publish_json = hang
        policies = {'ticket.new.high': NotificationConfig(recipients=['support@example.com'])}
        notifier = NotificationDispatcher(notifier_broker, policies, "notifier.notifications",
                                          publish_timeout=1.0)
        worker = TicketWorker(broker, PREFIX, ticket_repository, notifier=notifier, deadline=0.5,
                              consumer='notifying', block_ms=None)
        await worker.subscribe()

        envelope = await roundtrip(client, worker, TICKETS, 'create',
                                   dict(VALID_TICKET, importanceLevel='HIGH'))

        assert set(envelope) == {'ok'}
        stored = await ticket_repository.load_by_id(envelope['ok']['id'])
        assert stored.importance_level.value == 'HIGH'

        await worker.drain_background(timeout=3.0)
        assert "timed out" in caplog.text

    @pytest.mark.asyncio
    async def test_failing_notifier_is_logged(self, broker, client, comment_repository,
                                              ticket_repository, caplog):
        ticket = make_ticket_request().as_ticket()
        await ticket_repository.insert(ticket)
        notifier = Mock()
        notifier.comment_created = AsyncMock(side_effect=RuntimeError("notifier down"))
        worker = CommentWorker(broker, PREFIX, comment_repository, notifier=notifier,
                               consumer='notifying-comments', block_ms=None)
        await worker.subscribe()

        envelope = await roundtrip(client, worker, COMMENTS, 'create',
                                   {'ticketId': ticket.id, 'owner': 'bob', 'content': 'hi'})
        await worker.drain_background()

        assert envelope['ok']['id'] > 0
        assert "notifier down" in caplog.text


class TestPendingEntries:
    """Failed and abandoned entries are answered later instead of being lost."""

    @pytest.mark.asyncio
    async def test_failed_reply_does_not_strand_the_batch(self, broker, client, ticket_repository,
                                                          redis_client, monkeypatch):
        worker = TicketWorker(broker, PREFIX, ticket_repository, consumer='flaky',
                              block_ms=None, batch_size=2, reclaim_idle_ms=0)
        await worker.subscribe()

        real_reply = broker.reply
        replies = []

        async def flaky_reply(reply_to, envelope):
            replies.append(reply_to)
            if len(replies) == 1:
                raise ConnectionError("reply lost")
            await real_reply(reply_to, envelope)

        monkeypatch.setattr(broker, 'reply', flaky_reply)

        first = await client.publish_request(TICKETS, 'load', {'id': 1})
        second = await client.publish_request(TICKETS, 'load', {'id': 2})

        assert await worker.poll_once() == 1
        assert (await client.await_reply(second))['err']['httpStatusClass'] == 404

        subject = subject_for(PREFIX, TICKETS, 'load')
        assert (await redis_client.xpending(subject, worker.group))['pending'] == 1

        assert await worker.reclaim() == 1
        assert (await client.await_reply(first))['err']['httpStatusClass'] == 404
        assert (await redis_client.xpending(subject, worker.group))['pending'] == 0

    @pytest.mark.asyncio
    async def test_entries_of_a_crashed_consumer_are_reclaimed(self, broker, client, ticket_worker,
                                                               ticket_repository, redis_client):
        reply_to = await client.publish_request(TICKETS, 'create', VALID_TICKET)
        subject = subject_for(PREFIX, TICKETS, 'create')
        # Delivered to a consumer that never answers
        await redis_client.xreadgroup(ticket_worker.group, 'crashed', {subject: '>'}, count=1)
        assert await ticket_worker.poll_once() == 0

        rescuer = TicketWorker(broker, PREFIX, ticket_repository, consumer='rescuer',
                               block_ms=None, reclaim_idle_ms=0)
        assert await rescuer.reclaim() == 1

        envelope = await client.await_reply(reply_to)
        assert envelope['ok']['id'] > 0
        assert (await redis_client.xpending(subject, rescuer.group))['pending'] == 0

    @pytest.mark.asyncio
    async def test_fresh_pending_entries_are_left_alone(self, broker, client, ticket_worker,
                                                        redis_client):
        await client.publish_request(TICKETS, 'create', VALID_TICKET)
        subject = subject_for(PREFIX, TICKETS, 'create')
        await redis_client.xreadgroup(ticket_worker.group, 'busy', {subject: '>'}, count=1)

        assert ticket_worker.reclaim_idle_ms == 60000
        assert await ticket_worker.reclaim() == 0

    @pytest.mark.asyncio
    async def test_stop_keeps_consumer_with_pending_entries(self, broker, client, redis_client,
                                                            ticket_repository):
        worker = TicketWorker(broker, PREFIX, ticket_repository, consumer='holder', block_ms=None)
        await worker.subscribe()
        await client.publish_request(TICKETS, 'create', VALID_TICKET)
        subject = subject_for(PREFIX, TICKETS, 'create')
        await redis_client.xreadgroup(worker.group, 'holder', {subject: '>'}, count=1)

        await worker.start()
        await worker.stop()

        assert (await redis_client.xpending(subject, worker.group))['pending'] == 1


class TestRequestAge:
    """Requests the caller has given up on are not executed."""

    def test_entry_age(self):
        assert entry_age_seconds("1700000000000-0", now=1700000005.0) == 5.0
        assert entry_age_seconds("1700000000500-3", now=1700000001.0) == 0.5

    def test_one_request_per_read_by_default(self, broker, ticket_repository):
        assert DEFAULT_BATCH_SIZE == 1
        assert TicketWorker(broker, PREFIX, ticket_repository).batch_size == 1

    @pytest.mark.asyncio
    async def test_expired_request_is_answered_without_running(self, broker, client):
        repository = Mock()
        repository.insert = AsyncMock(return_value=1)
        worker = TicketWorker(broker, PREFIX, repository, consumer='aging', block_ms=None,
                              max_age=0.05)
        await worker.subscribe()

        reply_to = await client.publish_request(TICKETS, 'create', VALID_TICKET)
        await asyncio.sleep(0.15)
        assert await worker.poll_once() == 1

        envelope = await client.await_reply(reply_to)
        assert envelope['err']['httpStatusClass'] == 408
        repository.insert.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_recent_request_runs(self, broker, client, ticket_repository):
        worker = TicketWorker(broker, PREFIX, ticket_repository, consumer='young', block_ms=None,
                              max_age=15.0)
        await worker.subscribe()

        envelope = await roundtrip(client, worker, TICKETS, 'create', VALID_TICKET)
        assert envelope['ok']['id'] > 0


class TestLoadAndDeleteValidation:
    """Non-positive ids are rejected before storage."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("operation", ['load', 'delete'])
    async def test_ticket_id_must_be_positive(self, client, ticket_worker, operation):
        envelope = await roundtrip(client, ticket_worker, TICKETS, operation, {'id': 0})
        assert envelope['err']['httpStatusClass'] == 400
        assert envelope['err']['errors'][0]['code'] == "ID.invalid"

    @pytest.mark.asyncio
    async def test_comment_id_must_be_positive(self, client, comment_worker):
        envelope = await roundtrip(client, comment_worker, COMMENTS, 'delete', {'id': -1})
        assert envelope['err']['errors'][0]['code'] == "ID.invalid"
