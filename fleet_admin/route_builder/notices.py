from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from typing import Deque, List

from fleet_admin.route_builder.errors import RouteBuilderError

logger = logging.getLogger(__name__)

_LOG_LEVELS = {
    'info': logging.INFO,
    'validation': logging.INFO,
    'transient': logging.WARNING,
    'referential': logging.WARNING,
}


@dataclass(frozen=True)
class Notice:
    kind: str
    message: str

    def to_dict(self) -> dict:
        return {'kind': self.kind, 'message': self.message}


class NoticeBoard:
    """Operator-visible messages, drained by whoever renders them."""

    def __init__(self, maxlen: int = 100) -> None:
        self._notices: Deque[Notice] = deque(maxlen=maxlen)

    def post(self, kind: str, message: str) -> Notice:
        notice = Notice(kind, message)
        logger.log(_LOG_LEVELS.get(kind, logging.WARNING), '[%s] %s', kind, message)
        self._notices.append(notice)
        return notice

    def post_error(self, exc: BaseException, action: str) -> Notice:
        if isinstance(exc, RouteBuilderError):
            return self.post(exc.kind, exc.message)
        logger.exception('Unexpected failure while trying to %s', action, exc_info=exc)
        return self.post('transient', f'Could not {action}: {exc}')

    def peek(self) -> List[Notice]:
        return list(self._notices)

    def drain(self) -> List[Notice]:
        notices = list(self._notices)
        self._notices.clear()
        return notices

    def __len__(self) -> int:
        return len(self._notices)
