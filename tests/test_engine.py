"""
Unit-тесты для сборки движка и форматирования сообщений.
"""

import asyncio
from types import SimpleNamespace

from circle_bot.handlers.register import NOT_YOUR_CHOICE_TEXT, callback_foreign_choice, callback_mega, callback_shiny
from circle_bot.middlewares.error_handler import resolve_handler_name
from circle_bot.services.engine import CircleEngine
from circle_bot.services.navigation import nav
from circle_bot.services.notify import format_ban_reason, format_registration, format_status
from circle_bot.services.scheduler import SweepScheduler
from circle_bot.services.settings import Settings

from conftest import CHANNEL, CHAT_ID, make_registration


def make_engine(tmp_path, clock):
    settings = Settings(
        host_ids=[1],
        vip_ids=[2],
        queue_data_path=str(tmp_path / 'queue'),
        bans_data_path=str(tmp_path / 'Bans' / 'database.json'),
        pending_ttl_seconds=60,
        cache_ttl_seconds=30,
    )
    return CircleEngine(settings, clock=clock)


class TestCircleEngine:
    """Тесты для CircleEngine."""

    def test_hosts(self, tmp_path, clock):
        engine = make_engine(tmp_path, clock)
        assert engine.is_host(1)
        assert engine.is_host('1')
        assert not engine.is_host(2)

    def test_host_priority_through_intake(self, tmp_path, clock):
        """Ведущий регистрируется с наивысшим приоритетом."""
        engine = make_engine(tmp_path, clock)
        engine.queue.insert_to_waitlist(CHANNEL, make_registration(5), 0)

        engine.intake.begin(CHAT_ID, CHANNEL, 1)
        engine.intake.submit_fields(CHAT_ID, CHANNEL, 1, ign='Host', pokemon='Mew')
        engine.intake.choose_mega(CHAT_ID, 1, False)
        result = engine.intake.choose_shiny(CHAT_ID, 1, False)
        assert result['position'] == 1
        assert result['registration']['priority'] == 3

    def test_sweep(self, tmp_path, clock):
        """Уборка чистит брошенные регистрации, кэш и истекшие баны."""
        engine = make_engine(tmp_path, clock)
        engine.queue.get_stats(CHANNEL)
        engine.intake.submit_fields(CHAT_ID, CHANNEL, 7, ign='A', pokemon='B')
        engine.bans.ban(9, 'spam', 10)
        clock.advance(61)

        assert SweepScheduler(engine).run_once() == 3
        assert engine.intake.current_step(CHAT_ID, 7) is None
        assert len(engine.cache) == 0


class TestFormatting:
    """Тесты для текстов и клавиатур."""

    def test_registration_line(self):
        line = format_registration(make_registration(1, ign='Ash', mega='Yes', megaDetails='X', shiny='Yes'), 2)
        assert line.startswith('2. <b>Ash</b> - Charizard')
        assert '(Mega X)' in line
        assert '✨' in line

    def test_escapes_html(self):
        assert '&lt;b&gt;' in format_registration(make_registration(1, ign='<b>'))

    def test_status_not_registered(self, queue):
        assert '/register' in format_status(queue.get_user_status(CHANNEL, '1'))

    def test_pager_keyboard(self):
        assert nav.create_pager_keyboard('waitlist', 1, 1) is None
        keyboard = nav.create_pager_keyboard('waitlist', 2, 3)
        callbacks = [button.callback_data for button in keyboard.inline_keyboard[0]]
        assert callbacks == ['waitlist:1', 'waitlist:current', 'waitlist:3']

    def test_ban_reason_escaped(self):
        assert format_ban_reason('<script>спам</script>') == '&lt;script&gt;спам&lt;/script&gt;'
        assert format_ban_reason('') == 'не указана'

    def test_yes_no_keyboard_carries_owner(self):
        """Кнопки выбора помнят, чья это регистрация."""
        keyboard = nav.create_yes_no_keyboard('mega', 7)
        callbacks = [button.callback_data for button in keyboard.inline_keyboard[0]]
        assert callbacks == ['mega:yes:7', 'mega:no:7']

    def test_parse_choice(self):
        assert nav.parse_choice('shiny:yes:7') == (True, 7)
        assert nav.parse_choice('shiny:no:7') == (False, 7)
        # кнопки без владельца ничьи
        assert nav.parse_choice('mega:yes') == (True, None)
        assert nav.parse_choice('mega:yes:abc') == (True, None)


async def cmd_status(message):
    return message


class TestHandlerName:
    """Тесты для resolve_handler_name."""

    def test_name_from_handler_object(self):
        """Имя берется из data['handler'], а не из обертки middleware."""
        data = {'handler': SimpleNamespace(callback=cmd_status)}
        assert resolve_handler_name(object(), data) == 'cmd_status'

    def test_fallback_to_handler(self):
        assert resolve_handler_name(cmd_status, {}) == 'cmd_status'

    def test_unknown(self):
        assert resolve_handler_name(object(), {'handler': SimpleNamespace()}) == 'unknown'


class FakeCallback:
    """Нажатие inline-кнопки: запоминает ответы и правки сообщения."""

    def __init__(self, data, user_id):
        self.data = data
        self.from_user = SimpleNamespace(id=user_id)
        self.edits = []
        self.answers = []
        self.message = SimpleNamespace(chat=SimpleNamespace(id=CHAT_ID), edit_text=self._edit_text)

    async def _edit_text(self, text, **kwargs):
        self.edits.append(text)

    async def answer(self, text=None, show_alert=False):
        self.answers.append((text, show_alert))


class TestChoiceOwnership:
    """Чужие кнопки выбора не трогают ни заявку, ни сообщение."""

    def test_foreign_mega_click(self):
        callback = FakeCallback('mega:yes:7', user_id=8)
        asyncio.run(callback_mega(callback, state=None))
        assert callback.answers == [(NOT_YOUR_CHOICE_TEXT, True)]
        assert callback.edits == []

    def test_foreign_shiny_click(self):
        callback = FakeCallback('shiny:no:7', user_id=8)
        asyncio.run(callback_shiny(callback, state=None))
        assert callback.answers == [(NOT_YOUR_CHOICE_TEXT, True)]
        assert callback.edits == []

    def test_click_without_state(self):
        """Пользователь без начатой регистрации жмет на чужую клавиатуру."""
        callback = FakeCallback('mega:no:7', user_id=8)
        asyncio.run(callback_foreign_choice(callback))
        assert callback.answers == [(NOT_YOUR_CHOICE_TEXT, True)]
        assert callback.edits == []
