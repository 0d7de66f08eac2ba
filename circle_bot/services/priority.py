"""
Приоритет участника по его статусу в сообществе.
"""

from typing import Iterable

HOST_PRIORITY = 3
VIP_PRIORITY = 2
SUPPORTER_PRIORITY = 1
DEFAULT_PRIORITY = 0


class PriorityPolicy:
    """Ведущие > VIP > поддержавшие > остальные."""

    def __init__(
        self,
        vip_ids: Iterable = (),
        supporter_ids: Iterable = (),
        host_ids: Iterable = ()
    ):
        self.vip_ids = {str(x) for x in vip_ids}
        self.supporter_ids = {str(x) for x in supporter_ids}
        self.host_ids = {str(x) for x in host_ids}

    def priority_for(self, user_id) -> int:
        user_id = str(user_id)
        if user_id in self.host_ids:
            return HOST_PRIORITY
        if user_id in self.vip_ids:
            return VIP_PRIORITY
        if user_id in self.supporter_ids:
            return SUPPORTER_PRIORITY
        return DEFAULT_PRIORITY

    __call__ = priority_for
