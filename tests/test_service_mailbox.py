"""
Tests for the IMAP mailbox watcher.
"""

import imaplib
import pytest
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

from services import mailbox


NOW = datetime(2025, 3, 4, 12, 0, tzinfo=timezone.utc)


def _watcher():
    return mailbox.MailboxWatcher(
        host='imap.example.com',
        port=993,
        user='procurement@example.com',
        password='secret',
        folder='INBOX',
        lookback_hours=1,
    )


class TestSinceCriterion:
    """Test the IMAP SINCE date."""

    def test_same_day(self):
        assert mailbox.since_criterion(NOW, 1) == '04-Mar-2025'

    def test_window_crosses_midnight(self):
        now = datetime(2025, 3, 4, 0, 30, tzinfo=timezone.utc)
        assert mailbox.since_criterion(now, 1) == '03-Mar-2025'


class TestConnection:
    """Test connect/disconnect."""

    @patch('services.mailbox.imaplib.IMAP4_SSL')
    def test_context_manager_connects_and_logs_out(self, mock_imap):
        # Setup
        connection = mock_imap.return_value
        connection.select.return_value = ('OK', [b'3'])

        # Execute
        with _watcher() as watcher:
            assert watcher.connection is connection

        # Assert
        mock_imap.assert_called_once_with('imap.example.com', 993)
        connection.login.assert_called_once_with('procurement@example.com', 'secret')
        connection.select.assert_called_once_with('INBOX')
        connection.logout.assert_called_once()
        assert watcher.connection is None

    @patch('services.mailbox.imaplib.IMAP4_SSL')
    def test_select_failure(self, mock_imap):
        # Setup
        mock_imap.return_value.select.return_value = ('NO', [b'Mailbox does not exist'])

        # Execute & Assert
        with pytest.raises(mailbox.MailboxError, match="Could not select folder INBOX"):
            _watcher().connect()

    @patch('services.mailbox.imaplib.IMAP4_SSL')
    def test_logout_error_is_logged_not_raised(self, mock_imap):
        # Setup
        connection = mock_imap.return_value
        connection.select.return_value = ('OK', [b'0'])
        connection.logout.side_effect = imaplib.IMAP4.error('BYE')
        watcher = _watcher()
        watcher.connect()

        # Execute
        watcher.disconnect()

        # Assert
        assert watcher.connection is None


class TestSearchAndFetch:
    """Test UID search and fetch."""

    def test_search_unseen_criterion(self):
        # Setup
        watcher = _watcher()
        watcher.connection = MagicMock()
        watcher.connection.uid.return_value = ('OK', [b'11 12'])

        # Execute
        uids = watcher.search_unseen(NOW)

        # Assert
        assert uids == [b'11', b'12']
        watcher.connection.uid.assert_called_once_with('search', None, '(UNSEEN SINCE 04-Mar-2025)')

    def test_search_no_results(self):
        watcher = _watcher()
        watcher.connection = MagicMock()
        watcher.connection.uid.return_value = ('OK', [b''])

        assert watcher.search_unseen(NOW) == []

    def test_search_failure(self):
        watcher = _watcher()
        watcher.connection = MagicMock()
        watcher.connection.uid.return_value = ('NO', [])

        with pytest.raises(mailbox.MailboxError, match="search failed"):
            watcher.search_unseen(NOW)

    def test_fetch_uses_peek(self):
        # Setup
        watcher = _watcher()
        watcher.connection = MagicMock()
        watcher.connection.uid.return_value = (
            'OK', [(b'1 (UID 11 BODY[] {20}', b'Subject: Re: RFP\r\n\r\nHi'), b')']
        )

        # Execute
        raw = watcher.fetch(b'11')

        # Assert
        assert raw == b'Subject: Re: RFP\r\n\r\nHi'
        watcher.connection.uid.assert_called_once_with('fetch', b'11', '(BODY.PEEK[])')

    def test_fetch_failure_returns_none(self):
        watcher = _watcher()
        watcher.connection = MagicMock()
        watcher.connection.uid.return_value = ('NO', None)

        assert watcher.fetch(b'11') is None

    def test_fetch_unseen_skips_missing_messages(self):
        # Setup
        watcher = _watcher()
        watcher.search_unseen = MagicMock(return_value=[b'1', b'2'])
        watcher.fetch = MagicMock(side_effect=[None, b'raw-2'])

        # Execute
        result = list(watcher.fetch_unseen(NOW))

        # Assert
        assert result == [(b'2', b'raw-2')]


class TestMarkSeen:
    """Test flagging messages as read."""

    def test_mark_seen(self):
        watcher = _watcher()
        watcher.connection = MagicMock()
        watcher.connection.uid.return_value = ('OK', [])

        watcher.mark_seen(b'11')

        watcher.connection.uid.assert_called_once_with('store', b'11', '+FLAGS', '(\\Seen)')

    def test_mark_seen_failure_does_not_raise(self):
        watcher = _watcher()
        watcher.connection = MagicMock()
        watcher.connection.uid.return_value = ('NO', [])

        watcher.mark_seen(b'11')


class TestIsEnabled:

    @patch('services.mailbox.IMAP_ENABLED', True)
    def test_enabled(self):
        assert mailbox.MailboxWatcher.is_enabled() is True

    @patch('services.mailbox.IMAP_ENABLED', False)
    def test_disabled(self):
        assert mailbox.MailboxWatcher.is_enabled() is False
