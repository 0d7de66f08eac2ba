"""
Модели данных движка Union Circle.

Ключи документа канала совпадают с форматом файлов в queue/*.json,
поэтому записи camelCase: старые файлы читаются и сохраняются без изменений.
"""

from typing import TypedDict, List, Dict, Literal, Optional

YesNo = Literal['Yes', 'No']
ListKind = Literal['waitlist', 'queue', 'active']
IntakeStep = Literal[
    'awaiting_fields',
    'awaiting_mega_choice',
    'awaiting_mega_detail',
    'awaiting_shiny_choice',
]


class Registration(TypedDict, total=False):
    """Заявка участника. После вставки не меняется."""
    userId: str
    ign: str
    pokemon: str
    pokemonLevel: str
    mega: YesNo
    megaDetails: str
    shiny: YesNo
    holdingItem: str
    priority: int
    registeredAt: int  # epoch ms


class QueueBlock(TypedDict):
    """Основная очередь (FIFO)."""
    registrations: List[Registration]


class LastCommand(TypedDict):
    """Последняя команда открытия/закрытия канала."""
    command: str
    timestamp: int  # epoch ms


class ChannelState(TypedDict, total=False):
    """Документ канала."""
    lastCommands: Dict[str, LastCommand]
    lastCodeEmbeds: Dict[str, str]
    registeredUsers: Dict[str, bool]
    queue: QueueBlock
    waitingList: List[Registration]
    activeSession: List[Registration]
    sessionStartTime: Optional[int]  # epoch ms
    offlineEmbedMessageId: Optional[str]


class UserStatus(TypedDict):
    """Где находится пользователь."""
    is_registered: bool
    in_waiting_list: bool
    in_queue: bool
    in_active_session: bool
    list_kind: Optional[ListKind]
    position: Optional[int]
    registration: Optional[Registration]


class ChannelStats(TypedDict):
    """Статистика канала."""
    queue_size: int
    waitlist_size: int
    active_session_size: int
    total_registered: int
    has_active_session: bool
    session_start_time: Optional[int]


class WaitlistPage(TypedDict):
    """Страница листа ожидания."""
    entries: List[Registration]
    page: int
    total_pages: int
    total: int
    offset: int


class OperationResult(TypedDict, total=False):
    """Результат операции ведущего."""
    success: bool
    error: str
    session: List[Registration]
    added: List[Registration]
    moved: List[Registration]
    ended: List[Registration]
    retry_after: int


class BanResult(TypedDict):
    """Результат проверки бана."""
    banned: bool
    reason: str


class BanRecord(TypedDict):
    """Запись в базе банов."""
    reason: str
    bannedAt: int
    expires: Optional[int]


class IntakeResult(TypedDict, total=False):
    """Результат шага регистрации."""
    ok: bool
    step: Optional[IntakeStep]
    error: str
    reason: str
    status: UserStatus
    position: int
    wait_estimate: str
    registration: Registration


class PendingRegistration(TypedDict, total=False):
    """Незавершенная регистрация, живет только в памяти процесса."""
    channel_key: str
    user_id: str
    step: IntakeStep
    ign: str
    pokemon: str
    pokemonLevel: str
    holdingItem: str
    mega: YesNo
    megaDetails: str
    expires_at: float


def default_channel_state() -> ChannelState:
    """Возвращает пустой документ канала."""
    return {
        'lastCommands': {},
        'lastCodeEmbeds': {},
        'registeredUsers': {},
        'queue': {'registrations': []},
        'waitingList': [],
        'activeSession': [],
        'sessionStartTime': None,
    }
