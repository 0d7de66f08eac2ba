"""
Unit-тесты для хранилища каналов и кэша.
"""

import json

import pytest

from circle_bot.services.cache import StateCache
from circle_bot.services.errors import StoreUnavailableError
from circle_bot.services.storage import ChannelStore, normalize_channel_state
from circle_bot.services.util import channel_key_for
from circle_bot.types import default_channel_state

from conftest import CHANNEL, make_registration


class TestChannelStore:
    """Тесты для ChannelStore."""

    def test_missing_file_gives_default(self, store):
        """Отсутствующий файл - пустое состояние."""
        assert store.load(CHANNEL) == default_channel_state()
        assert not store.exists(CHANNEL)

    def test_round_trip(self, store):
        """load -> save -> load ничего не меняет, неизвестные ключи сохраняются."""
        state = default_channel_state()
        state['waitingList'].append(make_registration(1, priority=0, registeredAt=1))
        state['registeredUsers']['1'] = True
        state['lastCodeEmbeds'] = {'abc': 'msg1'}
        state['customField'] = {'nested': [1, 2]}

        assert store.save(CHANNEL, state)
        loaded = store.load(CHANNEL)
        assert loaded == state

        assert store.save(CHANNEL, loaded)
        assert store.load(CHANNEL) == state

    def test_corrupt_file_gives_default(self, store):
        """Поврежденный JSON не роняет загрузку."""
        store.path_for(CHANNEL).write_text('{not json', encoding='utf-8')
        assert store.load(CHANNEL) == default_channel_state()

    def test_backfill_missing_fields(self, store):
        """Старый документ без части полей дополняется дефолтами."""
        store.path_for(CHANNEL).write_text(json.dumps({'waitingList': []}), encoding='utf-8')
        state = store.load(CHANNEL)
        assert state['queue'] == {'registrations': []}
        assert state['activeSession'] == []
        assert state['registeredUsers'] == {}
        assert state['sessionStartTime'] is None

    def test_save_failure_returns_false(self, store):
        """Несериализуемое состояние не сохраняется и не падает."""
        state = default_channel_state()
        state['lastCodeEmbeds'] = {'bad': object()}
        assert store.save(CHANNEL, state) is False

    def test_list_channels(self, store):
        """Список сохраненных каналов."""
        store.save('b', default_channel_state())
        store.save('a', default_channel_state())
        assert store.list_channels() == ['a', 'b']


class TestNormalize:
    """Тесты для normalize_channel_state."""

    def test_not_a_dict(self):
        """Мусор вместо документа - пустое состояние."""
        assert normalize_channel_state([1, 2]) == default_channel_state()

    def test_broken_queue_block(self):
        """Сломанный блок очереди заменяется пустым."""
        state = normalize_channel_state({'queue': {'registrations': 'oops'}})
        assert state['queue'] == {'registrations': []}


class TestStateCache:
    """Тесты для StateCache."""

    def test_get_returns_copy(self, cache):
        """Изменение полученного состояния не трогает кэш."""
        state = cache.get(CHANNEL)
        state['waitingList'].append(make_registration(1))
        assert cache.get(CHANNEL)['waitingList'] == []

    def test_put_persists(self, cache, store):
        """После put состояние лежит в хранилище."""
        state = cache.get(CHANNEL)
        state['registeredUsers']['7'] = True
        cache.put(CHANNEL, state)
        assert store.load(CHANNEL)['registeredUsers'] == {'7': True}

    def test_ttl_expiry_rereads_store(self, cache, store, clock):
        """После TTL состояние перечитывается из хранилища."""
        cache.get(CHANNEL)
        external = default_channel_state()
        external['registeredUsers']['9'] = True
        store.save(CHANNEL, external)

        assert cache.get(CHANNEL)['registeredUsers'] == {}
        clock.advance(301)
        assert cache.get(CHANNEL)['registeredUsers'] == {'9': True}

    def test_failed_put_raises_and_keeps_old_state(self, cache, store, monkeypatch):
        """Сбой записи: исключение, кэш не видит несохраненного изменения."""
        cache.get(CHANNEL)
        monkeypatch.setattr(store, 'save', lambda key, state: False)

        state = cache.get(CHANNEL)
        state['registeredUsers']['1'] = True
        with pytest.raises(StoreUnavailableError):
            cache.put(CHANNEL, state)

        assert cache.get(CHANNEL)['registeredUsers'] == {}

    def test_sweep_expired(self, cache, clock):
        """Уборка удаляет только просроченные записи."""
        cache.get('a')
        clock.advance(200)
        cache.get('b')
        clock.advance(150)
        assert cache.sweep_expired() == 1
        assert len(cache) == 1

    def test_invalidate_all(self, store, clock):
        cache = StateCache(store, ttl_seconds=300, clock=clock)
        cache.get('a')
        cache.get('b')
        cache.invalidate_all()
        assert len(cache) == 0


class TestChannelKey:
    """Тесты для ключей каналов."""

    def test_key_is_chat_id(self):
        assert channel_key_for(-100123) == "-100123"
        assert channel_key_for(42) == "42"

    def test_distinct_chats_never_share_state(self, queue):
        """Группы с похожими названиями не делят одно состояние."""
        first, second = channel_key_for(-1001), channel_key_for(-2002)
        assert first != second

        queue.insert_to_waitlist(first, make_registration(7))
        assert queue.get_user_status(first, '7')["is_registered"]
        assert not queue.get_user_status(second, '7')["is_registered"]
