"""
Unit-тесты для пошаговой регистрации.
"""

import pytest

from circle_bot.services import errors
from circle_bot.services.errors import StoreUnavailableError
from circle_bot.services.intake import PendingRegistrations

from conftest import CHANNEL, CHAT_ID, make_registration, user_ids


def register(intake, user_id, mega=False, shiny=False, pokemon='Pikachu'):
    """Проходит все шаги регистрации."""
    assert intake.begin(CHAT_ID, CHANNEL, user_id)['ok']
    assert intake.submit_fields(CHAT_ID, CHANNEL, user_id, ign=f'T{user_id}', pokemon=pokemon, level='30')['ok']
    intake.choose_mega(CHAT_ID, user_id, mega)
    if mega:
        intake.submit_mega_detail(CHAT_ID, user_id, 'X')
    return intake.choose_shiny(CHAT_ID, user_id, shiny)


class TestIntakeFlow:
    """Тесты для полного прохода регистрации."""

    def test_happy_path(self, intake, queue):
        """Заявка попадает в лист ожидания со всеми полями."""
        result = register(intake, 1, mega=True, shiny=True)
        assert result['ok']
        assert result['position'] == 1
        assert result['wait_estimate']

        entry = queue.snapshot(CHANNEL)['waitingList'][0]
        assert entry['userId'] == '1'
        assert entry['mega'] == 'Yes'
        assert entry['megaDetails'] == 'X'
        assert entry['shiny'] == 'Yes'
        assert entry['pokemonLevel'] == '30'
        assert intake.current_step(CHAT_ID, 1) is None

    def test_steps(self, intake):
        """Шаги идут по порядку."""
        assert intake.begin(CHAT_ID, CHANNEL, 1)['step'] == 'awaiting_fields'
        assert intake.submit_fields(CHAT_ID, CHANNEL, 1, ign='A', pokemon='B')['step'] == 'awaiting_mega_choice'
        assert intake.choose_mega(CHAT_ID, 1, False)['step'] == 'awaiting_shiny_choice'
        assert intake.current_step(CHAT_ID, 1) == 'awaiting_shiny_choice'

    def test_priority_applied_at_finalize(self, intake, queue):
        """VIP встает перед обычными участниками."""
        register(intake, 1)
        result = register(intake, 200)
        assert result['position'] == 1
        assert user_ids(queue.snapshot(CHANNEL)['waitingList']) == ['200', '1']

    def test_fields_are_clipped(self, intake, queue):
        """Длинные поля обрезаются."""
        intake.begin(CHAT_ID, CHANNEL, 1)
        intake.submit_fields(CHAT_ID, CHANNEL, 1, ign='x' * 50, pokemon='y' * 50, level='1000')
        intake.choose_mega(CHAT_ID, 1, False)
        intake.choose_shiny(CHAT_ID, 1, False)
        entry = queue.snapshot(CHANNEL)['waitingList'][0]
        assert len(entry['ign']) == 20
        assert len(entry['pokemon']) == 30
        assert entry['pokemonLevel'] == '100'


class TestIntakeErrors:
    """Тесты для ошибок регистрации."""

    def test_missing_fields(self, intake):
        intake.begin(CHAT_ID, CHANNEL, 1)
        result = intake.submit_fields(CHAT_ID, CHANNEL, 1, ign='  ', pokemon='Eevee')
        assert result['error'] == errors.MISSING_FIELDS

    def test_missing_mega_detail(self, intake):
        intake.begin(CHAT_ID, CHANNEL, 1)
        intake.submit_fields(CHAT_ID, CHANNEL, 1, ign='A', pokemon='B')
        intake.choose_mega(CHAT_ID, 1, True)
        assert intake.submit_mega_detail(CHAT_ID, 1, '')['error'] == errors.MISSING_FIELDS

    def test_banned_at_begin(self, intake, bans):
        bans.ban(1, 'spam')
        result = intake.begin(CHAT_ID, CHANNEL, 1)
        assert result['error'] == errors.BANNED
        assert result['reason'] == 'spam'

    def test_already_registered_at_begin(self, intake):
        register(intake, 1)
        result = intake.begin(CHAT_ID, CHANNEL, 1)
        assert result['error'] == errors.ALREADY_REGISTERED
        assert result['status']['in_waiting_list']

    def test_unexpected_step(self, intake):
        """Шаг не по порядку не ломает регистрацию."""
        intake.begin(CHAT_ID, CHANNEL, 1)
        intake.submit_fields(CHAT_ID, CHANNEL, 1, ign='A', pokemon='B')
        result = intake.choose_shiny(CHAT_ID, 1, True)
        assert result['error'] == errors.UNEXPECTED_STEP
        assert intake.current_step(CHAT_ID, 1) == 'awaiting_mega_choice'

    def test_no_pending(self, intake):
        assert intake.choose_mega(CHAT_ID, 1, True)['error'] == errors.NO_PENDING_REGISTRATION


class TestFinalizeRecheck:
    """Повторные проверки на последнем шаге."""

    def test_banned_between_steps(self, intake, bans, queue):
        intake.begin(CHAT_ID, CHANNEL, 1)
        intake.submit_fields(CHAT_ID, CHANNEL, 1, ign='A', pokemon='B')
        intake.choose_mega(CHAT_ID, 1, False)
        bans.ban(1, 'cheating', 3600)

        result = intake.choose_shiny(CHAT_ID, 1, False)
        assert result['error'] == errors.BANNED
        assert queue.get_stats(CHANNEL)['waitlist_size'] == 0
        assert intake.current_step(CHAT_ID, 1) is None

    def test_registered_between_steps(self, intake, queue):
        """Пока шла регистрация, пользователя добавили другим путем."""
        intake.begin(CHAT_ID, CHANNEL, 1)
        intake.submit_fields(CHAT_ID, CHANNEL, 1, ign='A', pokemon='B')
        intake.choose_mega(CHAT_ID, 1, False)
        queue.insert_to_waitlist(CHANNEL, make_registration(1))

        result = intake.choose_shiny(CHAT_ID, 1, False)
        assert result['error'] == errors.ALREADY_REGISTERED
        assert queue.get_stats(CHANNEL)['waitlist_size'] == 1

    def test_store_failure_keeps_pending(self, intake, store, monkeypatch):
        """Сбой записи: исключение, шаг можно повторить."""
        intake.begin(CHAT_ID, CHANNEL, 1)
        intake.submit_fields(CHAT_ID, CHANNEL, 1, ign='A', pokemon='B')
        intake.choose_mega(CHAT_ID, 1, False)

        monkeypatch.setattr(store, 'save', lambda key, state: False)
        with pytest.raises(StoreUnavailableError):
            intake.choose_shiny(CHAT_ID, 1, False)
        monkeypatch.undo()

        assert intake.current_step(CHAT_ID, 1) == 'awaiting_shiny_choice'
        assert intake.choose_shiny(CHAT_ID, 1, False)['ok']


class TestAbandonment:
    """Брошенные и отмененные регистрации."""

    def test_cancel_leaves_channel_untouched(self, intake, queue):
        register(intake, 2)
        before = queue.snapshot(CHANNEL)

        intake.begin(CHAT_ID, CHANNEL, 1)
        intake.submit_fields(CHAT_ID, CHANNEL, 1, ign='A', pokemon='B')
        assert intake.cancel(CHAT_ID, 1)
        assert not intake.cancel(CHAT_ID, 1)
        assert queue.snapshot(CHANNEL) == before

    def test_pending_expires(self, intake, clock):
        """После TTL незавершенная регистрация пропадает."""
        intake.begin(CHAT_ID, CHANNEL, 1)
        intake.submit_fields(CHAT_ID, CHANNEL, 1, ign='A', pokemon='B')
        clock.advance(901)
        assert intake.choose_mega(CHAT_ID, 1, False)['error'] == errors.NO_PENDING_REGISTRATION

    def test_each_step_refreshes_ttl(self, intake, clock):
        intake.begin(CHAT_ID, CHANNEL, 1)
        intake.submit_fields(CHAT_ID, CHANNEL, 1, ign='A', pokemon='B')
        clock.advance(800)
        intake.choose_mega(CHAT_ID, 1, False)
        clock.advance(800)
        assert intake.choose_shiny(CHAT_ID, 1, False)['ok']

    def test_sweep(self, clock):
        pending = PendingRegistrations(ttl_seconds=10, clock=clock)
        pending.put(('c', '1'), {'step': 'awaiting_fields'})
        pending.put(('c', '2'), {'step': 'awaiting_fields'})
        clock.advance(5)
        pending.put(('c', '2'), {'step': 'awaiting_mega_choice'})
        clock.advance(6)
        assert pending.sweep_expired() == 1
        assert ('c', '2') in pending
        assert len(pending) == 1

    def test_separate_channels(self, intake):
        """Регистрации в разных чатах независимы."""
        intake.begin(CHAT_ID, CHANNEL, 1)
        intake.submit_fields(CHAT_ID, CHANNEL, 1, ign='A', pokemon='B')
        assert intake.current_step(CHAT_ID + 1, 1) is None
