from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from core.exceptions import (
    AuthError,
    NotFound,
    PermissionDenied,
    StorageCategory,
    StorageError,
    ValidationError,
)
from crud.poll_crud import poll_crud
from crud.poll_option_crud import poll_option_crud
from models import Poll, PollOption, Vote
from services import poll_service
from services.poll_service import validate_create_form, validate_poll
from services.vote_service import submit_vote

pytestmark = pytest.mark.anyio


def storage_failure():
    return OperationalError("INSERT", {}, Exception("database is locked"))


class TestValidation:

    def test_empty_title_is_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_poll("   ", ["A", "B"])
        assert exc_info.value.errors == {"title": ["Title is required"]}

    def test_single_option_is_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_poll("Q", ["A", "", "   "])
        assert "options" in exc_info.value.errors

    def test_all_problems_reported_together(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_poll("", [])
        assert set(exc_info.value.errors) == {"title", "options"}

    def test_values_are_trimmed_and_blanks_dropped(self):
        title, options = validate_poll("  Lunch?  ", [" Pizza ", "", None, "Sushi"])
        assert title == "Lunch?"
        assert options == ["Pizza", "Sushi"]

    def test_create_form_ignores_extra_slots(self):
        _, options = validate_create_form("Q", ["A", "B", "C", "D", "E"])
        assert options == ["A", "B", "C", "D"]

    def test_create_form_counts_only_first_slots(self):
        # the two real answers sit past the fourth slot
        with pytest.raises(ValidationError):
            validate_create_form("Q", ["", "", "", "", "A", "B"])


class TestCreatePoll:

    async def test_creates_poll_with_options(self, session, alice):
        detail = await poll_service.create_poll(session, alice, "Favourite colour?", ["Red", "Blue", "", ""])

        assert detail.poll.id is not None
        assert detail.poll.question == "Favourite colour?"
        assert detail.poll.user_id == alice.id
        assert [opt.text for opt in detail.options] == ["Red", "Blue"]
        assert detail.tally.total_votes == 0
        assert all(opt.percentage == 0.0 for opt in detail.tally.options)

    async def test_validation_runs_before_anything_is_stored(self, session, alice, row_count):
        with pytest.raises(ValidationError):
            await poll_service.create_poll(session, alice, "", ["A", "B"])
        with pytest.raises(ValidationError):
            await poll_service.create_poll(session, alice, "Q", ["A"])

        assert await row_count(Poll) == 0

    async def test_requires_signed_in_user(self, session, row_count):
        with pytest.raises(AuthError) as exc_info:
            await poll_service.create_poll(session, None, "Q", ["A", "B"])

        assert exc_info.value.redirect_to == "/auth/login"
        assert await row_count(Poll) == 0

    async def test_poll_insert_failure(self, session, alice, row_count):
        with patch.object(poll_crud, "create_poll", AsyncMock(side_effect=storage_failure())):
            with pytest.raises(StorageError) as exc_info:
                await poll_service.create_poll(session, alice, "Q", ["A", "B"])

        assert exc_info.value.category is StorageCategory.POLL
        assert exc_info.value.message == "Error creating poll."
        assert await row_count(Poll) == 0

    async def test_options_failure_removes_the_poll(self, session, alice, row_count, session_factory):
        with patch.object(poll_option_crud, "add_options_to_poll", AsyncMock(side_effect=storage_failure())):
            with pytest.raises(StorageError) as exc_info:
                await poll_service.create_poll(session, alice, "Q", ["A", "B"])

        assert exc_info.value.category is StorageCategory.OPTIONS
        assert exc_info.value.message == "Error creating poll options."
        assert await row_count(Poll) == 0
        assert await row_count(PollOption) == 0
        async with session_factory() as fresh_session:
            result = await fresh_session.execute(select(func.count()).select_from(Poll))
            assert result.scalar_one() == 0

    async def test_failed_cleanup_still_reports_options_error(self, session, alice, row_count):
        with patch.object(poll_option_crud, "add_options_to_poll", AsyncMock(side_effect=storage_failure())), \
                patch.object(poll_crud, "delete_poll", AsyncMock(side_effect=storage_failure())):
            with pytest.raises(StorageError) as exc_info:
                await poll_service.create_poll(session, alice, "Q", ["A", "B"])

        assert exc_info.value.category is StorageCategory.OPTIONS
        # the orphan stays behind when the cleanup itself fails
        assert await row_count(Poll) == 1


class TestEditPoll:

    @pytest.fixture
    async def poll(self, session, alice):
        return await poll_service.create_poll(session, alice, "Old question", ["A", "B"])

    async def test_owner_can_edit(self, session, alice, poll):
        old_ids = {opt.id for opt in poll.options}

        detail = await poll_service.edit_poll(session, alice, poll.poll.id, " New question ", ["X", "Y", "Z", "W", "V"])

        assert detail.poll.question == "New question"
        assert [opt.text for opt in detail.options] == ["X", "Y", "Z", "W", "V"]
        assert old_ids.isdisjoint(opt.id for opt in detail.options)

        stored = await poll_service.get_poll_detail(session, poll.poll.id)
        assert stored.poll.question == "New question"
        assert [opt.text for opt in stored.options] == ["X", "Y", "Z", "W", "V"]

    async def test_edit_discards_votes_of_replaced_options(self, session, alice, bob, poll, row_count):
        await submit_vote(session, poll.poll.id, poll.options[0].id, bob)

        await poll_service.edit_poll(session, alice, poll.poll.id, "Q", ["C", "D"])

        assert await row_count(Vote) == 0
        stored = await poll_service.get_poll_detail(session, poll.poll.id, bob.id)
        assert stored.tally.has_voted is False

    async def test_non_owner_is_rejected(self, session, bob, poll):
        with pytest.raises(PermissionDenied) as exc_info:
            await poll_service.edit_poll(session, bob, poll.poll.id, "Hijacked", ["X", "Y"])

        assert exc_info.value.redirect_to == "/polls"
        stored = await poll_service.get_poll_detail(session, poll.poll.id)
        assert stored.poll.question == "Old question"
        assert [opt.text for opt in stored.options] == ["A", "B"]

    async def test_unknown_poll(self, session, alice):
        with pytest.raises(NotFound):
            await poll_service.edit_poll(session, alice, 9999, "Q", ["X", "Y"])

    async def test_invalid_edit_changes_nothing(self, session, alice, poll):
        with pytest.raises(ValidationError):
            await poll_service.edit_poll(session, alice, poll.poll.id, "New", ["only one"])

        stored = await poll_service.get_poll_detail(session, poll.poll.id)
        assert stored.poll.question == "Old question"

    async def test_failed_insert_leaves_poll_without_options(self, session, alice, poll):
        # the failed step rolls back and expires every loaded row
        poll_id = poll.poll.id

        with patch.object(poll_option_crud, "add_options_to_poll", AsyncMock(side_effect=storage_failure())):
            with pytest.raises(StorageError):
                await poll_service.edit_poll(session, alice, poll_id, "New", ["X", "Y"])

        stored = await poll_service.get_poll_detail(session, poll_id)
        assert stored.poll.question == "New"
        assert list(stored.options) == []


class TestDeletePoll:

    async def test_owner_deletes_poll_with_options_and_votes(self, session, alice, bob, row_count):
        detail = await poll_service.create_poll(session, alice, "Q", ["A", "B"])
        await submit_vote(session, detail.poll.id, detail.options[1].id, bob)

        await poll_service.delete_poll(session, alice, detail.poll.id)

        assert await row_count(Poll) == 0
        assert await row_count(PollOption) == 0
        assert await row_count(Vote) == 0

    async def test_non_owner_cannot_delete(self, session, alice, bob, row_count):
        detail = await poll_service.create_poll(session, alice, "Q", ["A", "B"])

        with pytest.raises(PermissionDenied):
            await poll_service.delete_poll(session, bob, detail.poll.id)

        assert await row_count(Poll) == 1


async def test_get_poll_detail_for_missing_poll(session):
    with pytest.raises(NotFound):
        await poll_service.get_poll_detail(session, 42)
