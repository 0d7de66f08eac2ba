"""
Коды ошибок движка и исключения.

Ошибки, вызванные действиями пользователя, возвращаются кодами в результате.
Исключения только для ошибок вызывающего кода и сбоев записи.
"""

ALREADY_REGISTERED = 'AlreadyRegistered'
SESSION_ALREADY_ACTIVE = 'SessionAlreadyActive'
NO_ACTIVE_SESSION = 'NoActiveSession'
EMPTY_QUEUE = 'EmptyQueue'
EMPTY_WAITLIST = 'EmptyWaitlist'
BANNED = 'Banned'
STORE_UNAVAILABLE = 'StoreUnavailable'
INCONSISTENT_MEMBERSHIP = 'InconsistentMembership'
COOLDOWN_ACTIVE = 'CooldownActive'
NO_PENDING_REGISTRATION = 'NoPendingRegistration'
UNEXPECTED_STEP = 'UnexpectedStep'
MISSING_FIELDS = 'MissingFields'


class CircleError(Exception):
    """Базовое исключение движка."""
    code = 'CircleError'


class StoreUnavailableError(CircleError):
    """Состояние канала не удалось сохранить."""
    code = STORE_UNAVAILABLE

    def __init__(self, channel_key: str):
        super().__init__(f"Не удалось сохранить состояние канала {channel_key}")
        self.channel_key = channel_key


class AlreadyRegisteredError(CircleError):
    """Повторная вставка пользователя, который уже в одном из списков."""
    code = ALREADY_REGISTERED

    def __init__(self, channel_key: str, user_id: str):
        super().__init__(f"Пользователь {user_id} уже зарегистрирован в {channel_key}")
        self.channel_key = channel_key
        self.user_id = user_id
