"""
Tests for the inbound email -> proposal pipeline.
"""

import pytest
from contextlib import contextmanager
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

from domain.email_processor import ProposalProcessor
from domain.errors import ValidationError
from domain.models import InboundEmail, ProcessingOutcome
from persistence.models import EmailDirection, EmailLog, Proposal, RFPVendor
from services.ai_extraction import AIExtractionError


PARSED = {'pricing': 42000, 'deliveryTime': '3 weeks', 'warranty': '2 years', 'paymentTerms': 'Net 30'}


@pytest.fixture
def processor():
    return ProposalProcessor(inbox_address='procurement@example.com')


@pytest.fixture
def vendor(make_vendor):
    return make_vendor()


@pytest.fixture
def rfp(make_rfp):
    return make_rfp()


def _reply(rfp_id=None, **kwargs):
    subject = f'Re: RFP: Office Laptops [ID: {rfp_id}]' if rfp_id else 'Re: RFP: Office Laptops'
    kwargs.setdefault('from_address', 'sales@acme.com')
    kwargs.setdefault('subject', subject)
    kwargs.setdefault('text_body', 'We quote $42,000 for 20 laptops, delivery in 3 weeks.')
    return InboundEmail(**kwargs)


class TestProcessEmail:
    """Test the ordered checks of process_email."""

    @patch('domain.email_processor.ai_extraction.parse_proposal')
    def test_proposal_created(self, mock_parse, processor, db_session, vendor, rfp):
        # Setup
        mock_parse.return_value = dict(PARSED)

        # Execute
        result = processor.process_email(db_session, _reply(rfp.id))

        # Assert
        assert result.outcome == ProcessingOutcome.PROPOSAL_CREATED
        assert result.should_mark_seen is True
        assert result.vendor_id == vendor.id
        assert result.rfp_id == rfp.id

        proposal = db_session.get(Proposal, result.proposal_id)
        assert proposal.pricing == 42000.0
        assert proposal.raw_content.startswith('We quote $42,000')

        log = db_session.get(EmailLog, result.email_log_id)
        assert log.direction == EmailDirection.INBOUND
        assert log.processed is True
        assert log.proposal_id == proposal.id
        assert log.to_email == 'procurement@example.com'

    def test_missing_body(self, processor, db_session):
        result = processor.process_email(db_session, _reply(text_body=''))

        assert result.outcome == ProcessingOutcome.MISSING_FIELDS
        assert result.should_mark_seen is False

    def test_missing_sender(self, processor, db_session):
        result = processor.process_email(db_session, _reply(from_address=''))

        assert result.outcome == ProcessingOutcome.MISSING_FIELDS

    def test_not_rfp_related(self, processor, db_session, vendor):
        result = processor.process_email(db_session, _reply(subject='Our spring catalogue'))

        assert result.outcome == ProcessingOutcome.NOT_RFP_RELATED
        assert result.should_mark_seen is False

    def test_unknown_vendor(self, processor, db_session, rfp):
        result = processor.process_email(db_session, _reply(rfp.id, from_address='stranger@nowhere.com'))

        assert result.outcome == ProcessingOutcome.UNKNOWN_VENDOR
        assert result.should_mark_seen is False

    def test_unresolved_rfp(self, processor, db_session, vendor, rfp):
        result = processor.process_email(db_session, _reply())

        assert result.outcome == ProcessingOutcome.UNRESOLVED_RFP
        assert result.should_mark_seen is True

    def test_rfp_not_found(self, processor, db_session, vendor):
        result = processor.process_email(db_session, _reply('deadbeef-0000'))

        assert result.outcome == ProcessingOutcome.RFP_NOT_FOUND
        assert result.should_mark_seen is True

    @patch('domain.email_processor.ai_extraction.parse_proposal')
    def test_resolved_from_latest_send(self, mock_parse, processor, db_session, vendor, rfp):
        # Setup
        mock_parse.return_value = dict(PARSED)
        db_session.add(RFPVendor(
            rfp_id=rfp.id, vendor_id=vendor.id, email_sent=True, sent_at=datetime.now(timezone.utc)
        ))
        db_session.commit()

        # Execute
        result = processor.process_email(db_session, _reply())

        # Assert
        assert result.outcome == ProcessingOutcome.PROPOSAL_CREATED
        assert result.rfp_id == rfp.id

    @patch('domain.email_processor.ai_extraction.parse_proposal')
    def test_duplicate_proposal(self, mock_parse, processor, db_session, vendor, rfp):
        # Setup
        db_session.add(Proposal(rfp_id=rfp.id, vendor_id=vendor.id, raw_content='first'))
        db_session.commit()

        # Execute
        result = processor.process_email(db_session, _reply(rfp.id))

        # Assert
        assert result.outcome == ProcessingOutcome.DUPLICATE_PROPOSAL
        assert result.should_mark_seen is True
        mock_parse.assert_not_called()
        assert db_session.query(EmailLog).count() == 0

    @patch('domain.email_processor.ai_extraction.parse_proposal')
    def test_ai_failure_keeps_inbound_log(self, mock_parse, processor, db_session, vendor, rfp):
        # Setup
        mock_parse.side_effect = AIExtractionError("Failed to extract JSON from AI response")

        # Execute
        result = processor.process_email(db_session, _reply(rfp.id))

        # Assert
        assert result.outcome == ProcessingOutcome.FAILED
        assert result.should_mark_seen is False
        assert 'Failed to extract JSON' in result.error_message
        assert db_session.query(Proposal).count() == 0
        log = db_session.query(EmailLog).one()
        assert log.processed is False
        assert log.id == result.email_log_id

    @patch('domain.email_processor.ai_extraction.parse_proposal')
    def test_html_only_body_used(self, mock_parse, processor, db_session, vendor, rfp):
        mock_parse.return_value = dict(PARSED)

        result = processor.process_email(
            db_session, _reply(rfp.id, text_body='', html_body='<p>Price $42,000</p>')
        )

        assert result.outcome == ProcessingOutcome.PROPOSAL_CREATED
        assert mock_parse.call_args[0][1] == '<p>Price $42,000</p>'


class TestReceiveEmail:
    """Test the webhook variant."""

    @patch('domain.email_processor.ai_extraction.parse_proposal')
    def test_receive_email(self, mock_parse, processor, db_session, vendor, rfp):
        # Setup
        mock_parse.return_value = dict(PARSED)

        # Execute
        result = processor.receive_email(db_session, {
            'from': 'Acme Sales <SALES@acme.com>',
            'subject': 'Quote',
            'body': 'We quote $42,000',
            'rfpId': rfp.id,
        })

        # Assert
        assert result['message'] == 'Email received and proposal created successfully'
        assert result['proposal']['pricing'] == 42000.0
        assert result['emailLog']['processed'] is True
        assert result['parsedData'] == PARSED

    def test_unknown_vendor(self, processor, db_session, rfp):
        with pytest.raises(ValidationError, match="Please register the vendor first"):
            processor.receive_email(db_session, {'from': 'x@y.com', 'subject': 'Re: RFP', 'body': 'hi'})

    def test_unresolved_rfp(self, processor, db_session, vendor):
        with pytest.raises(ValidationError, match="Could not determine which RFP"):
            processor.receive_email(db_session, {'from': 'sales@acme.com', 'subject': 'Quote', 'body': 'hi'})

    def test_missing_rfp(self, processor, db_session, vendor):
        with pytest.raises(ValidationError, match="RFP with ID nope not found"):
            processor.receive_email(db_session, {
                'from': 'sales@acme.com', 'subject': 'Quote', 'body': 'hi', 'rfpId': 'nope',
            })

    def test_duplicate(self, processor, db_session, vendor, rfp):
        db_session.add(Proposal(rfp_id=rfp.id, vendor_id=vendor.id, raw_content='first'))
        db_session.commit()

        with pytest.raises(ValidationError, match="already exists"):
            processor.receive_email(db_session, {
                'from': 'sales@acme.com', 'subject': f'Re: RFP [ID: {rfp.id}]', 'body': 'hi',
            })

    def test_body_required(self, processor, db_session):
        with pytest.raises(ValidationError, match="body is required"):
            processor.receive_email(db_session, {'from': 'sales@acme.com'})


class TestProcessMailbox:
    """Test one mailbox tick against a mocked watcher."""

    def _raw(self, subject, sender='sales@acme.com', body='We quote $42,000'):
        return (
            f"From: {sender}\r\nTo: procurement@example.com\r\nSubject: {subject}\r\n"
            f"Content-Type: text/plain; charset=\"UTF-8\"\r\n\r\n{body}\r\n"
        ).encode('utf-8')

    def _watcher(self, messages):
        watcher = MagicMock()
        watcher.__enter__.return_value = watcher
        watcher.__exit__.return_value = False
        watcher.fetch_unseen.return_value = iter(messages)
        return watcher

    def _scope(self, session):
        @contextmanager
        def scope():
            yield session
        return scope

    @patch('domain.email_processor.ai_extraction.parse_proposal')
    def test_tick_marks_only_handled(self, mock_parse, processor, db_session, vendor, rfp):
        # Setup
        mock_parse.return_value = dict(PARSED)
        watcher = self._watcher([
            (b'1', self._raw(f'Re: RFP: Office Laptops [ID: {rfp.id}]')),
            (b'2', self._raw('Newsletter', sender='news@vendor.com')),
            (b'3', self._raw('Re: RFP', sender='stranger@nowhere.com')),
        ])

        # Execute
        summary = processor.process_mailbox(watcher, session_factory=self._scope(db_session))

        # Assert
        assert summary.fetched == 3
        assert summary.created == 1
        assert summary.marked_seen == 1
        watcher.mark_seen.assert_called_once_with(b'1')
        assert [r.outcome for r in summary.results] == [
            ProcessingOutcome.PROPOSAL_CREATED,
            ProcessingOutcome.NOT_RFP_RELATED,
            ProcessingOutcome.UNKNOWN_VENDOR,
        ]

    @patch('domain.email_processor.ai_extraction.parse_proposal')
    def test_failed_parse_left_unseen(self, mock_parse, processor, db_session, vendor, rfp):
        # Setup
        mock_parse.side_effect = AIExtractionError("Failed to extract JSON from AI response")
        watcher = self._watcher([(b'7', self._raw(f'Re: RFP [ID: {rfp.id}]'))])

        # Execute
        summary = processor.process_mailbox(watcher, session_factory=self._scope(db_session))

        # Assert
        assert summary.failed == 1
        assert summary.marked_seen == 0
        watcher.mark_seen.assert_not_called()

    def test_unparseable_message(self, processor, db_session):
        # Setup
        watcher = self._watcher([(b'9', b'')])

        # Execute
        summary = processor.process_mailbox(watcher, session_factory=self._scope(db_session))

        # Assert
        assert summary.failed == 1
        assert 'Unparseable message' in summary.results[0].error_message
        watcher.mark_seen.assert_not_called()

    @patch('domain.email_processor.ai_extraction.parse_proposal')
    @patch('domain.email_processor.vendors.find_by_email')
    def test_error_on_one_message_does_not_stop_tick(self, mock_find, mock_parse, processor,
                                                     db_session, vendor, rfp):
        # Setup
        mock_find.side_effect = [RuntimeError('database is locked'), vendor]
        mock_parse.return_value = dict(PARSED)
        watcher = self._watcher([
            (b'1', self._raw(f'Re: RFP [ID: {rfp.id}]', sender='other@acme.com')),
            (b'2', self._raw(f'Re: RFP: Office Laptops [ID: {rfp.id}]')),
        ])

        # Execute
        summary = processor.process_mailbox(watcher, session_factory=self._scope(db_session))

        # Assert
        assert summary.fetched == 2
        assert [r.outcome for r in summary.results] == [
            ProcessingOutcome.FAILED,
            ProcessingOutcome.PROPOSAL_CREATED,
        ]
        assert 'database is locked' in summary.results[0].error_message
        watcher.mark_seen.assert_called_once_with(b'2')
        assert summary.marked_seen == 1

    @patch('domain.email_processor.ai_extraction.parse_proposal')
    def test_mark_seen_error_recorded_as_failure(self, mock_parse, processor, db_session, vendor, rfp):
        # Setup
        mock_parse.return_value = dict(PARSED)
        watcher = self._watcher([(b'4', self._raw(f'Re: RFP [ID: {rfp.id}]'))])
        watcher.mark_seen.side_effect = OSError('connection reset')

        # Execute
        summary = processor.process_mailbox(watcher, session_factory=self._scope(db_session))

        # Assert
        assert summary.failed == 1
        assert summary.marked_seen == 0
        assert 'connection reset' in summary.results[0].error_message
