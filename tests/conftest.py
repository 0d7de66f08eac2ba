"""
Общие фикстуры: хранилище во временной папке и управляемые часы.
"""

import pytest

from circle_bot.services.bans import BanList
from circle_bot.services.cache import StateCache
from circle_bot.services.intake import PendingRegistrations, RegistrationIntake
from circle_bot.services.priority import PriorityPolicy
from circle_bot.services.queue import QueueService
from circle_bot.services.storage import ChannelStore

CHAT_ID = -100500
CHANNEL = str(CHAT_ID)


class FakeClock:
    """Часы, которые идут только по команде."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_registration(user_id, ign=None, pokemon='Charizard', **extra):
    registration = {
        'userId': str(user_id),
        'ign': ign or f'Trainer{user_id}',
        'pokemon': pokemon,
        'pokemonLevel': '50',
        'mega': 'No',
        'megaDetails': '',
        'shiny': 'No',
        'holdingItem': '',
    }
    registration.update(extra)
    return registration


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(tmp_path):
    return ChannelStore(str(tmp_path / 'queue'))


@pytest.fixture
def cache(store, clock):
    return StateCache(store, ttl_seconds=300, clock=clock)


@pytest.fixture
def queue(cache, clock):
    return QueueService(cache, players_per_session=3, average_session_minutes=5, cooldown_seconds=600, clock=clock)


@pytest.fixture
def bans(tmp_path, clock):
    return BanList(str(tmp_path / 'Bans' / 'database.json'), clock=clock)


@pytest.fixture
def priority():
    return PriorityPolicy(vip_ids=[200], supporter_ids=[100], host_ids=[300])


@pytest.fixture
def intake(queue, bans, priority, clock):
    return RegistrationIntake(
        queue,
        check_ban=bans.check_ban,
        priority_for=priority.priority_for,
        pending=PendingRegistrations(ttl_seconds=900, clock=clock),
        clock=clock,
    )


def user_ids(entries):
    return [entry['userId'] for entry in entries]
