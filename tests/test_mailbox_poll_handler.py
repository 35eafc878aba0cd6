"""
Tests for the scheduled mailbox poll Lambda handler.
"""

from unittest.mock import MagicMock, patch

import mailbox_poll_handler
from domain.models import PollSummary, ProcessingOutcome, ProcessingResult
from services.mailbox import MailboxError


class TestMailboxPollHandler:

    @patch('mailbox_poll_handler.proposal_processor')
    @patch('mailbox_poll_handler.MailboxWatcher')
    def test_disabled_skips(self, mock_watcher, mock_processor):
        # Setup
        mock_watcher.is_enabled.return_value = False

        # Execute
        result = mailbox_poll_handler.lambda_handler({}, MagicMock())

        # Assert
        assert result['enabled'] is False
        assert result['fetched'] == 0
        mock_processor.process_mailbox.assert_not_called()

    @patch('mailbox_poll_handler.database')
    @patch('mailbox_poll_handler.proposal_processor')
    @patch('mailbox_poll_handler.MailboxWatcher')
    def test_tick_summary(self, mock_watcher, mock_processor, mock_database):
        # Setup
        mock_watcher.is_enabled.return_value = True
        mock_processor.process_mailbox.return_value = PollSummary(
            fetched=2,
            marked_seen=1,
            results=[
                ProcessingResult(outcome=ProcessingOutcome.PROPOSAL_CREATED, proposal_id='p1'),
                ProcessingResult(outcome=ProcessingOutcome.FAILED, error_message='boom'),
            ],
        )

        # Execute
        result = mailbox_poll_handler.lambda_handler({'source': 'aws.events'}, MagicMock())

        # Assert
        assert result['fetched'] == 2
        assert result['proposalsCreated'] == 1
        assert result['failed'] == 1
        assert result['markedSeen'] == 1
        mock_database.init_db.assert_called_once()
        mock_processor.process_mailbox.assert_called_once_with(mock_watcher.return_value)

    @patch('mailbox_poll_handler.database')
    @patch('mailbox_poll_handler.proposal_processor')
    @patch('mailbox_poll_handler.MailboxWatcher')
    def test_connection_failure_reported(self, mock_watcher, mock_processor, mock_database):
        # Setup
        mock_watcher.is_enabled.return_value = True
        mock_processor.process_mailbox.side_effect = MailboxError('Could not select folder INBOX: NO')

        # Execute
        result = mailbox_poll_handler.lambda_handler({}, MagicMock())

        # Assert
        assert result['fetched'] == 0
        assert 'Could not select folder' in result['error']
