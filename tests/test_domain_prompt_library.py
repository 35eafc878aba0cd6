"""
Tests for stored AI prompt templates.
"""

import pytest
from unittest.mock import patch

from domain import prompt_library
from domain.errors import ConflictError, NotFoundError, ValidationError
from persistence.models import PromptType
from services import prompts as prompt_service


def _create(session, **overrides):
    payload = {
        'name': 'Custom parsing',
        'description': 'Stricter parser',
        'promptType': 'proposal_parsing',
        'template': 'Parse {emailContent}',
    }
    payload.update(overrides)
    return prompt_library.create_prompt(session, payload)


class TestCreatePrompt:

    def test_create_prompt(self, db_session):
        # Execute
        prompt = _create(db_session)

        # Assert
        assert prompt.prompt_type == PromptType.PROPOSAL_PARSING
        assert prompt.is_active is True
        assert prompt.to_dict()['promptType'] == 'PROPOSAL_PARSING'

    def test_create_inactive(self, db_session):
        prompt = _create(db_session, isActive=False)

        assert prompt.is_active is False

    def test_duplicate_name(self, db_session):
        _create(db_session)

        with pytest.raises(ConflictError):
            _create(db_session, promptType='RECOMMENDATION')

    def test_invalid_type(self, db_session):
        with pytest.raises(ValidationError, match="promptType must be one of"):
            _create(db_session, promptType='SUMMARY')

    def test_invalid_is_active(self, db_session):
        with pytest.raises(ValidationError, match="isActive must be a boolean"):
            _create(db_session, isActive='yes')

    @patch('domain.prompt_library.prompt_service.clear_cache')
    def test_create_clears_cache(self, mock_clear, db_session):
        _create(db_session)

        mock_clear.assert_called_once()


class TestListAndGet:

    def test_list_filtered_by_type(self, db_session):
        _create(db_session)
        _create(db_session, name='Custom creation', promptType='RFP_CREATION', template='{input}')

        assert len(prompt_library.list_prompts(db_session)) == 2
        filtered = prompt_library.list_prompts(db_session, 'rfp_creation')
        assert [p.name for p in filtered] == ['Custom creation']

    def test_list_invalid_type(self, db_session):
        with pytest.raises(ValidationError):
            prompt_library.list_prompts(db_session, 'bogus')

    def test_get_missing(self, db_session):
        with pytest.raises(NotFoundError):
            prompt_library.get_prompt(db_session, 'missing')


class TestUpdateAndDelete:

    def test_update_without_is_active_keeps_flag(self, db_session):
        prompt = _create(db_session)

        updated = prompt_library.update_prompt(db_session, prompt.id, {'template': 'New {emailContent}'})

        assert updated.template == 'New {emailContent}'
        assert updated.is_active is True

    def test_deactivate(self, db_session):
        prompt = _create(db_session)

        updated = prompt_library.update_prompt(db_session, prompt.id, {'isActive': False})

        assert updated.is_active is False

    def test_rename_to_taken_name(self, db_session):
        _create(db_session)
        other = _create(db_session, name='Other')

        with pytest.raises(ConflictError):
            prompt_library.update_prompt(db_session, other.id, {'name': 'Custom parsing'})

    def test_edit_visible_to_next_load(self, db_session):
        """Test the cache does not serve a stale template after an edit."""
        # Setup
        prompt = _create(db_session)
        db_session.commit()
        assert prompt_service.load_prompt(db_session, PromptType.PROPOSAL_PARSING) == 'Parse {emailContent}'

        # Execute
        prompt_library.update_prompt(db_session, prompt.id, {'template': 'Edited {emailContent}'})
        db_session.commit()

        # Assert
        assert prompt_service.load_prompt(db_session, PromptType.PROPOSAL_PARSING) == 'Edited {emailContent}'

    def test_delete_falls_back_to_packaged_default(self, db_session):
        # Setup
        prompt = _create(db_session)
        db_session.commit()

        # Execute
        result = prompt_library.delete_prompt(db_session, prompt.id)
        db_session.commit()

        # Assert
        assert result == {'message': 'Prompt deleted successfully'}
        template = prompt_service.load_prompt(db_session, PromptType.PROPOSAL_PARSING)
        assert '{emailContent}' in template
        assert template != 'Parse {emailContent}'
