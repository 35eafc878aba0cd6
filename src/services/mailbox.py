"""
IMAP mailbox access for vendor replies.

Connects over SSL, searches unseen messages received since a cutoff and
fetches them with BODY.PEEK[] so nothing is marked read until the caller
decides the message was handled.
"""

import imaplib
import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Iterator, List, Optional, Tuple

logger = logging.getLogger(__name__)


def _env_flag(name: str, default: str = 'false') -> bool:
    return os.environ.get(name, default).strip().lower() in ('1', 'true', 'yes', 'on')


IMAP_ENABLED = _env_flag('MAIL_IMAP_ENABLED')
IMAP_HOST = os.environ.get('MAIL_IMAP_HOST', 'imap.gmail.com')
IMAP_PORT = int(os.environ.get('MAIL_IMAP_PORT', '993'))
IMAP_USER = os.environ.get('MAIL_IMAP_USER') or os.environ.get('MAIL_USER', '')
IMAP_PASSWORD = os.environ.get('MAIL_IMAP_PASSWORD') or os.environ.get('MAIL_PASSWORD', '')
IMAP_FOLDER = os.environ.get('MAIL_IMAP_FOLDER', 'INBOX')
LOOKBACK_HOURS = int(os.environ.get('MAIL_LOOKBACK_HOURS', '1'))


class MailboxError(Exception):
    """Raised when the IMAP server rejects a command."""
    pass


def since_criterion(now: Optional[datetime] = None, lookback_hours: int = LOOKBACK_HOURS) -> str:
    """
    IMAP SINCE date for the lookback window.

    IMAP SINCE has day granularity, so a one-hour window covers the whole
    calendar day the cutoff falls on.

    Example:
        >>> since_criterion(datetime(2025, 3, 4, 0, 30, tzinfo=timezone.utc), 1)
        '03-Mar-2025'
    """
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(hours=lookback_hours)
    return cutoff.strftime('%d-%b-%Y')


class MailboxWatcher:
    """
    Thin wrapper around imaplib.IMAP4_SSL.

    Use as a context manager:

        with MailboxWatcher() as mailbox:
            for uid, raw in mailbox.fetch_unseen():
                ...
                mailbox.mark_seen(uid)
    """

    def __init__(
        self,
        host: str = IMAP_HOST,
        port: int = IMAP_PORT,
        user: str = IMAP_USER,
        password: str = IMAP_PASSWORD,
        folder: str = IMAP_FOLDER,
        lookback_hours: int = LOOKBACK_HOURS
    ):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.folder = folder
        self.lookback_hours = lookback_hours
        self.connection: Optional[imaplib.IMAP4_SSL] = None

    @staticmethod
    def is_enabled() -> bool:
        return IMAP_ENABLED

    def connect(self) -> None:
        logger.info(f"Connecting to IMAP {self.host}:{self.port} as {self.user}")
        self.connection = imaplib.IMAP4_SSL(self.host, self.port)
        self.connection.login(self.user, self.password)
        status, _ = self.connection.select(self.folder)
        if status != 'OK':
            raise MailboxError(f"Could not select folder {self.folder}: {status}")

    def disconnect(self) -> None:
        if self.connection is None:
            return
        try:
            self.connection.logout()
        except (imaplib.IMAP4.error, OSError) as e:
            logger.warning(f"IMAP logout failed: {e}")
        finally:
            self.connection = None

    def __enter__(self) -> 'MailboxWatcher':
        self.connect()
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.disconnect()

    def search_unseen(self, now: Optional[datetime] = None) -> List[bytes]:
        """Return UIDs of unseen messages received inside the lookback window."""
        criterion = f"(UNSEEN SINCE {since_criterion(now, self.lookback_hours)})"
        status, data = self.connection.uid('search', None, criterion)
        if status != 'OK':
            raise MailboxError(f"IMAP UID search failed: {status}")

        uids = data[0].split() if data and data[0] else []
        logger.info(f"IMAP search {criterion}: {len(uids)} message(s)")
        return uids

    def fetch(self, uid: bytes) -> Optional[bytes]:
        """Fetch a raw message without setting the \\Seen flag."""
        status, data = self.connection.uid('fetch', uid, '(BODY.PEEK[])')
        if status != 'OK' or not data:
            logger.warning(f"IMAP fetch failed for UID {uid!r}: {status}")
            return None

        for item in data:
            if isinstance(item, tuple) and len(item) >= 2:
                return item[1]
        return None

    def fetch_unseen(self, now: Optional[datetime] = None) -> Iterator[Tuple[bytes, bytes]]:
        """Yield (uid, raw_message) for every unseen message in the window."""
        for uid in self.search_unseen(now):
            raw = self.fetch(uid)
            if raw is not None:
                yield uid, raw

    def mark_seen(self, uid: bytes) -> None:
        status, _ = self.connection.uid('store', uid, '+FLAGS', '(\\Seen)')
        if status != 'OK':
            logger.error(f"Error marking UID {uid!r} as read: {status}")
        else:
            logger.info(f"Marked UID {uid!r} as read")
