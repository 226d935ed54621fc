"""
Tests for service wiring, startup configuration and shutdown.
"""
import asyncio
import json
import os
from unittest.mock import patch

import fakeredis
import pytest

import service
from config.config_manager import ConfigManager, ConfigurationError
from dispatch.broker import Broker
from dispatch.client import GatewayClient, unwrap
from database.adapter import ConnectionError
from dispatch.subjects import TICKETS

from conftest import make_ticket_request


@pytest.fixture
def config_manager(tmp_path):
    data = ConfigManager.default_config()
    data['database']['url'] = str(tmp_path / 'service.db')
    data['broker']['block_ms'] = None
    data['broker']['prefix'] = 'svc'
    config_file = tmp_path / 'config.json'
    config_file.write_text(json.dumps(data), encoding='utf-8')
    return ConfigManager(str(config_file), environ={})


@pytest.fixture
def fake_redis(redis_server):
    return fakeredis.FakeAsyncRedis(server=redis_server, decode_responses=True)


async def _wait_for_reply(redis_client, reply_to):
    for _ in range(100):
        if await redis_client.llen(reply_to):
            return
        await asyncio.sleep(0.02)


class TestTicketService:
    """Test setup, request handling and shutdown of the assembled service."""

    @pytest.mark.asyncio
    async def test_setup_serves_requests(self, config_manager, fake_redis, redis_client):
        ticket_service = service.TicketService(config_manager)
        with patch.object(service, 'create_redis_client', return_value=fake_redis) as create_client:
            await ticket_service.setup()

        try:
            create_client.assert_called_once_with(config_manager.broker.url)
            assert [w.name for w in ticket_service.workers] == ['TicketWorker', 'CommentWorker']
            assert all(w.running for w in ticket_service.workers)
            assert ticket_service.workers[0].deadline == config_manager.workers.ticket_deadline

            client = GatewayClient(Broker(redis_client), 'svc', timeout=1.0)
            reply_to = await client.publish_request(TICKETS, 'create', make_ticket_request().to_dict())
            await _wait_for_reply(redis_client, reply_to)
            assert unwrap(await client.await_reply(reply_to))['id'] > 0
        finally:
            await ticket_service.close()

        assert not any(w.running for w in ticket_service.workers)

    @pytest.mark.asyncio
    async def test_run_until_shutdown_requested(self, config_manager, fake_redis):
        ticket_service = service.TicketService(config_manager)

        with patch.object(service, 'create_redis_client', return_value=fake_redis):
            run_task = asyncio.create_task(ticket_service.run())
            for _ in range(100):
                if ticket_service.workers and all(w.running for w in ticket_service.workers):
                    break
                await asyncio.sleep(0.01)

            ticket_service.request_shutdown('SIGTERM')
            await asyncio.wait_for(run_task, timeout=2.0)

        assert run_task.done()
        assert not any(w.running for w in ticket_service.workers)

    @pytest.mark.asyncio
    async def test_setup_failure_closes_resources(self, config_manager, tmp_path):
        # A directory cannot be opened as a database file
        config_manager.database.url = str(tmp_path)
        ticket_service = service.TicketService(config_manager)

        with pytest.raises(ConnectionError):
            await ticket_service.setup()

        assert ticket_service.workers == []


class TestLoadConfiguration:
    """Test configuration loading at startup."""

    def test_valid_configuration(self, tmp_path):
        config_file = tmp_path / 'config.json'
        with patch.dict(os.environ, {'CONFIG_FILE': str(config_file)}):
            config_manager = service.load_configuration()

        assert config_file.exists()
        assert config_manager.broker.prefix == 'kiosk'

    def test_invalid_configuration(self, tmp_path):
        config_file = tmp_path / 'config.json'
        data = ConfigManager.default_config()
        data['log_level'] = 'LOUD'
        config_file.write_text(json.dumps(data), encoding='utf-8')

        with patch.dict(os.environ, {'CONFIG_FILE': str(config_file)}):
            with pytest.raises(ConfigurationError) as exc_info:
                service.load_configuration()

        assert 'Invalid log_level' in str(exc_info.value)
