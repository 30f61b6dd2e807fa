"""Tests for jadwa.workflow.studies - quote, approval, completion and rejection."""

from __future__ import annotations

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from jadwa.db.connection import session_scope
from jadwa.db.models import AdminLogModel
from jadwa.errors import AuthorizationError, InvalidTransition, NotFoundError, ValidationError
from jadwa.models import StudyStatus, StudyType


async def submit(services, people, **overrides):
    fields = {
        "type": "feasibility_study",
        "title": "Coffee roastery in Riyadh",
        "description": "Market sizing and five-year projections",
        "details": {"budget": "500k"},
    }
    fields.update(overrides)
    return await services.studies.create(people.client, **fields)


class TestCreate:
    @pytest.mark.asyncio
    async def test_create(self, services, people):
        request = await submit(services, people, attachments=["brief.pdf"])

        assert request.status == StudyStatus.PENDING
        assert request.type == StudyType.FEASIBILITY_STUDY
        assert request.consultant_id is None
        assert request.price is None and request.duration_days is None
        assert request.details == {"budget": "500k"}
        assert request.attachments == ["brief.pdf"]

    @pytest.mark.asyncio
    async def test_validation(self, services, people):
        with pytest.raises(ValidationError):
            await submit(services, people, type="horoscope")
        with pytest.raises(ValidationError):
            await submit(services, people, title="  ")
        with pytest.raises(AuthorizationError):
            await services.studies.create(people.consultant, "financial_report", "t", "d")


class TestQuote:
    @pytest.mark.asyncio
    async def test_self_claim_binds_consultant(self, services, people):
        request = await submit(services, people)

        quoted = await services.studies.quote(request.id, "12000", 30, people.consultant)

        assert quoted.status == StudyStatus.QUOTED
        assert quoted.consultant_id == people.consultant.user_id
        assert quoted.price == Decimal("12000")
        assert quoted.duration_days == 30

    @pytest.mark.asyncio
    async def test_quote_rebinding(self, services, people):
        """A second consultant cannot take over; the bound one may re-quote."""
        request = await submit(services, people)
        await services.studies.quote(request.id, 12000, 30, people.consultant)

        with pytest.raises(AuthorizationError):
            await services.studies.quote(request.id, 9000, 20, people.other_consultant)

        requoted = await services.studies.quote(request.id, 11000, 25, people.consultant)
        assert requoted.status == StudyStatus.QUOTED
        assert requoted.price == Decimal("11000")
        assert requoted.consultant_id == people.consultant.user_id

    @pytest.mark.asyncio
    async def test_admin_quote_does_not_bind(self, services, people):
        request = await submit(services, people)

        quoted = await services.studies.quote(request.id, 5000, 10, people.admin)

        assert quoted.consultant_id is None
        claimed = await services.studies.quote(request.id, 5500, 10, people.other_consultant)
        assert claimed.consultant_id == people.other_consultant.user_id

    @pytest.mark.asyncio
    async def test_who_may_quote(self, services, people):
        request = await submit(services, people)

        with pytest.raises(AuthorizationError):
            await services.studies.quote(request.id, 5000, 10, people.client)
        with pytest.raises(AuthorizationError):
            await services.studies.quote(request.id, 5000, 10, people.pending_consultant)
        with pytest.raises(ValidationError):
            await services.studies.quote(request.id, 5000, 0, people.consultant)
        with pytest.raises(NotFoundError):
            await services.studies.quote(uuid4(), 5000, 10, people.consultant)


class TestApproveAndComplete:
    @pytest.mark.asyncio
    async def test_full_lifecycle(self, services, people, session_factory):
        request = await submit(services, people)
        await services.studies.quote(request.id, 12000, 30, people.consultant)

        with pytest.raises(AuthorizationError):
            await services.studies.approve(request.id, people.other_client)
        approved = await services.studies.approve(request.id, people.client)
        assert approved.status == StudyStatus.APPROVED

        with pytest.raises(AuthorizationError):
            await services.studies.complete(request.id, ["report.pdf"], people.other_consultant)
        done = await services.studies.complete(request.id, ["report.pdf", "model.xlsx"], people.consultant)

        assert done.status == StudyStatus.COMPLETED
        assert done.deliverables == ["report.pdf", "model.xlsx"]
        assert done.completed_at is not None

        await services.dispatcher.drain()
        async with session_scope(session_factory) as session:
            actions = (
                await session.execute(select(AdminLogModel.action))
            ).scalars().all()
        assert sorted(actions) == [
            "approve_study_request",
            "complete_study_request",
            "quote_study_request",
        ]

    @pytest.mark.asyncio
    async def test_order_is_enforced(self, services, people):
        request = await submit(services, people)

        with pytest.raises(InvalidTransition):
            await services.studies.approve(request.id, people.client)

        await services.studies.quote(request.id, 12000, 30, people.consultant)
        with pytest.raises(InvalidTransition):
            await services.studies.complete(request.id, [], people.consultant)

        await services.studies.approve(request.id, people.client)
        with pytest.raises(InvalidTransition):
            await services.studies.quote(request.id, 1, 1, people.consultant)


class TestReject:
    @pytest.mark.asyncio
    async def test_client_rejects_quote(self, services, people):
        request = await submit(services, people)
        await services.studies.quote(request.id, 12000, 30, people.consultant)

        rejected = await services.studies.reject(request.id, people.client, reason="Too expensive")

        assert rejected.status == StudyStatus.REJECTED
        assert rejected.rejection_reason == "Too expensive"
        with pytest.raises(InvalidTransition):
            await services.studies.quote(request.id, 9000, 30, people.consultant)

    @pytest.mark.asyncio
    async def test_outsiders_cannot_reject(self, services, people):
        request = await submit(services, people)

        with pytest.raises(AuthorizationError):
            await services.studies.reject(request.id, people.other_client)
        with pytest.raises(AuthorizationError):
            await services.studies.reject(request.id, people.consultant)


class TestListing:
    @pytest.mark.asyncio
    async def test_scoped_by_role(self, services, people):
        mine = await submit(services, people)
        await services.studies.create(people.other_client, "economic_analysis", "Other", "Not mine")
        await services.studies.quote(mine.id, 100, 1, people.consultant)

        assert [r.id for r in await services.studies.list_mine(people.client)] == [mine.id]
        assert [r.id for r in await services.studies.list_mine(people.consultant)] == [mine.id]
        assert await services.studies.list_mine(people.other_consultant) == []
        assert len(await services.studies.list_mine(people.admin)) == 2

    @pytest.mark.asyncio
    async def test_get(self, services, people):
        request = await submit(services, people)

        assert (await services.studies.get(request.id, people.client)).id == request.id
        with pytest.raises(AuthorizationError):
            await services.studies.get(request.id, people.other_client)
        with pytest.raises(NotFoundError):
            await services.studies.get(uuid4(), people.admin)
