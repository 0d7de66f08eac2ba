"""
Сервис для создания inline-клавиатур: выбор Да/Нет при регистрации и листание листа ожидания.
"""

from typing import List, Optional, Tuple
from aiogram.types import InlineKeyboardMarkup, InlineKeyboardButton


class NavigationService:
    """Сервис для создания клавиатур с кнопками навигации."""

    @staticmethod
    def create_simple_keyboard(text_callback_pairs: List[tuple], row_width: int = 1) -> InlineKeyboardMarkup:
        """Создает клавиатуру из пар (текст, callback), по row_width кнопок в ряд."""
        buttons = [InlineKeyboardButton(text=text, callback_data=callback) for text, callback in text_callback_pairs]
        rows = [buttons[i:i + row_width] for i in range(0, len(buttons), row_width)]
        return InlineKeyboardMarkup(inline_keyboard=rows)

    @staticmethod
    def create_yes_no_keyboard(prefix: str, owner_id: int) -> InlineKeyboardMarkup:
        """Кнопки «Да»/«Нет» с callback вида prefix:yes:owner / prefix:no:owner."""
        return NavigationService.create_simple_keyboard([
            ("✅ Да", f"{prefix}:yes:{owner_id}"),
            ("❌ Нет", f"{prefix}:no:{owner_id}"),
        ], row_width=2)

    @staticmethod
    def parse_choice(data: str) -> Tuple[bool, Optional[int]]:
        """Разбирает callback Да/Нет: (выбрано «Да», id владельца или None)."""
        parts = (data or '').split(':')
        answer = len(parts) > 1 and parts[1] == 'yes'
        owner = parts[2] if len(parts) > 2 else ''
        return answer, int(owner) if owner.lstrip('-').isdigit() else None

    @staticmethod
    def create_pager_keyboard(prefix: str, page: int, total_pages: int) -> Optional[InlineKeyboardMarkup]:
        """Кнопки «Назад»/«Дальше» для постраничного списка. None, если страница одна."""
        if total_pages <= 1:
            return None
        pairs = []
        if page > 1:
            pairs.append(("⬅️ Назад", f"{prefix}:{page - 1}"))
        pairs.append((f"{page}/{total_pages}", f"{prefix}:current"))
        if page < total_pages:
            pairs.append(("Дальше ➡️", f"{prefix}:{page + 1}"))
        return NavigationService.create_simple_keyboard(pairs, row_width=len(pairs))


# Глобальный экземпляр сервиса навигации
nav = NavigationService()
