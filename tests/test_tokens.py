"""
Tests for the Token Service - Verifying Single-Use Review Credentials.

These tests verify:
1. ISSUE: high entropy, unrelated to ids, seven day expiry
2. VALIDATE: read-only, computed expiry, consumed before expired
3. CONSUME: exactly one winner per token
4. RESEND/SWEEP: old links stop working; concurrent re-sends leave one link
"""

from datetime import timedelta

import pytest

from review_gateway.core.errors import (
    ActiveTokenExistsError,
    ConcurrencyError,
    TokenConsumedError,
    TokenExpiredError,
    TokenNotFoundError,
)
from review_gateway.core.security import generate_review_token, tokens_match
from review_gateway.models import ApplicationStatus, ReviewToken, TokenStatus
from review_gateway.services.tokens import TokenService


@pytest.fixture
async def review_target(make_application, make_reviewer):
    application = await make_application(ApplicationStatus.IN_REVIEW)
    reviewer = await make_reviewer()
    return application, reviewer


# =============================================================================
# TEST: TOKEN VALUES
# =============================================================================


class TestTokenValues:
    def test_token_has_at_least_256_bits(self):
        token = generate_review_token()
        # 32 random bytes -> 43 URL-safe base64 characters
        assert len(token) >= 43

    def test_short_requests_are_raised_to_minimum(self):
        assert len(generate_review_token(8)) >= 43

    def test_tokens_are_url_safe_and_unique(self):
        tokens = {generate_review_token() for _ in range(200)}
        assert len(tokens) == 200
        for token in tokens:
            assert all(c.isalnum() or c in "-_" for c in token)

    def test_tokens_match_is_exact(self):
        token = generate_review_token()
        assert tokens_match(token, token)
        assert not tokens_match(token[:-1], token)
        assert not tokens_match(token + "x", token)


# =============================================================================
# TEST: ISSUE
# =============================================================================


class TestIssue:
    async def test_issue_creates_active_token_with_seven_day_expiry(self, store, clock, review_target):
        application, reviewer = review_target
        service = TokenService(store, clock=clock)

        token = await service.issue(application.id, reviewer.id)

        assert token.status == TokenStatus.ACTIVE
        assert token.application_id == application.id
        assert token.reviewer_id == reviewer.id
        assert token.expires_at - token.created_at == timedelta(days=7)
        assert str(application.id) not in token.token
        assert str(application.id.hex) not in token.token

    async def test_second_issue_without_resend_is_refused(self, store, clock, review_target):
        application, reviewer = review_target
        service = TokenService(store, clock=clock)
        await service.issue(application.id, reviewer.id)

        with pytest.raises(ActiveTokenExistsError):
            await service.issue(application.id, reviewer.id)

    async def test_resend_expires_previous_token(self, store, clock, review_target):
        application, reviewer = review_target
        service = TokenService(store, clock=clock)
        first = await service.issue(application.id, reviewer.id)

        second = await service.issue(application.id, reviewer.id, resend=True)

        assert second.token != first.token
        with pytest.raises(TokenExpiredError):
            await service.validate(first.token)
        assert (await service.validate(second.token)).token == second.token
        active = await service.active_tokens(application.id)
        assert [t.token for t in active] == [second.token]

    async def test_concurrent_resends_leave_one_active_token(self, store, clock, review_target):
        """Resend A reads the active set, resend B completes, then A resumes."""
        application, reviewer = review_target
        application_id, reviewer_id = application.id, reviewer.id
        await TokenService(store, clock=clock).issue(application_id, reviewer_id)
        await store.commit()

        racing = TokenService(store, clock=clock)
        competing = TokenService(store, clock=clock)
        read_active = racing.active_tokens
        landed = []

        async def competing_resend_lands_first(application_id):
            stale = await read_active(application_id)
            token = await competing.issue(application_id, reviewer_id, resend=True)
            landed.append(token.token)
            await store.commit()
            return stale

        racing.active_tokens = competing_resend_lands_first

        with pytest.raises(ActiveTokenExistsError):
            await racing.issue(application_id, reviewer_id, resend=True)
        # The losing request rolls back; the winner was already committed
        await store.session.rollback()

        active = await TokenService(store, clock=clock).active_tokens(application_id)
        assert [t.token for t in active] == landed

    async def test_lapsed_token_does_not_block_new_issue(self, store, clock, review_target):
        application, reviewer = review_target
        service = TokenService(store, clock=clock)
        first = await service.issue(application.id, reviewer.id)

        clock.advance(days=8)
        second = await service.issue(application.id, reviewer.id)

        stored = await store.get(ReviewToken, first.token)
        assert stored.status == TokenStatus.EXPIRED
        assert second.status == TokenStatus.ACTIVE


# =============================================================================
# TEST: VALIDATE
# =============================================================================


class TestValidate:
    async def test_validate_is_read_only(self, store, clock, review_target):
        application, reviewer = review_target
        service = TokenService(store, clock=clock)
        token = await service.issue(application.id, reviewer.id)

        for _ in range(3):
            record = await service.validate(token.token)
            assert record.status == TokenStatus.ACTIVE

    @pytest.mark.parametrize("value", ["", "nope", "x" * 300])
    async def test_unknown_values_are_not_found(self, store, clock, value):
        service = TokenService(store, clock=clock)

        with pytest.raises(TokenNotFoundError):
            await service.validate(value)

    async def test_prefix_of_real_token_is_not_found(self, store, clock, review_target):
        application, reviewer = review_target
        service = TokenService(store, clock=clock)
        token = await service.issue(application.id, reviewer.id)

        with pytest.raises(TokenNotFoundError):
            await service.validate(token.token[:20])

    async def test_expiry_is_computed_even_while_status_is_active(self, store, clock, review_target):
        application, reviewer = review_target
        service = TokenService(store, clock=clock)
        token = await service.issue(application.id, reviewer.id)

        clock.advance(days=7, seconds=1)

        with pytest.raises(TokenExpiredError):
            await service.validate(token.token)
        with pytest.raises(TokenExpiredError):
            await service.consume(token.token)
        stored = await store.get(ReviewToken, token.token)
        assert stored.status == TokenStatus.ACTIVE

    async def test_token_is_valid_up_to_expiry(self, store, clock, review_target):
        application, reviewer = review_target
        service = TokenService(store, clock=clock)
        token = await service.issue(application.id, reviewer.id)

        clock.advance(days=7)

        assert (await service.validate(token.token)).token == token.token


# =============================================================================
# TEST: CONSUME
# =============================================================================


class TestConsume:
    async def test_consume_marks_token_used(self, store, clock, review_target):
        application, reviewer = review_target
        service = TokenService(store, clock=clock)
        token = await service.issue(application.id, reviewer.id)

        consumed = await service.consume(token.token)

        assert consumed.status == TokenStatus.CONSUMED
        assert consumed.consumed_at is not None

    async def test_second_consume_fails(self, store, clock, review_target):
        application, reviewer = review_target
        service = TokenService(store, clock=clock)
        token = await service.issue(application.id, reviewer.id)
        await service.consume(token.token)

        with pytest.raises(TokenConsumedError) as exc_info:
            await service.consume(token.token)
        assert isinstance(exc_info.value, ConcurrencyError)

    async def test_consumed_token_no_longer_validates(self, store, clock, review_target):
        application, reviewer = review_target
        service = TokenService(store, clock=clock)
        token = await service.issue(application.id, reviewer.id)
        await service.consume(token.token)

        with pytest.raises(TokenConsumedError):
            await service.validate(token.token)

    async def test_consume_race_has_one_winner(self, store, clock, review_target):
        """A competing request consumes between our validate and our write."""
        application, reviewer = review_target
        service = TokenService(store, clock=clock)
        token = await service.issue(application.id, reviewer.id)

        original = store.compare_and_swap
        raced = []

        async def competing_write_first(model, record_id, expected, updated):
            if model is ReviewToken and not raced:
                raced.append(record_id)
                assert await original(model, record_id, expected, updated)
            return await original(model, record_id, expected, updated)

        store.compare_and_swap = competing_write_first

        with pytest.raises(TokenConsumedError):
            await service.consume(token.token)
        stored = await store.get(ReviewToken, token.token)
        assert stored.status == TokenStatus.CONSUMED


# =============================================================================
# TEST: SWEEP
# =============================================================================


class TestSweep:
    async def test_sweep_persists_computed_expiry(self, store, clock, make_application, make_reviewer):
        reviewer = await make_reviewer()
        old_app = await make_application(ApplicationStatus.IN_REVIEW)
        new_app = await make_application(ApplicationStatus.IN_REVIEW)
        service = TokenService(store, clock=clock)

        old = await service.issue(old_app.id, reviewer.id)
        clock.advance(days=3)
        new = await service.issue(new_app.id, reviewer.id)
        clock.advance(days=5)

        assert await service.sweep_expired() == 1
        assert (await store.get(ReviewToken, old.token)).status == TokenStatus.EXPIRED
        assert (await store.get(ReviewToken, new.token)).status == TokenStatus.ACTIVE
        assert await service.sweep_expired() == 0

    async def test_expire_for_application(self, store, clock, review_target):
        application, reviewer = review_target
        service = TokenService(store, clock=clock)
        token = await service.issue(application.id, reviewer.id)

        assert await service.expire_for_application(application.id) == 1
        with pytest.raises(TokenExpiredError):
            await service.validate(token.token)
