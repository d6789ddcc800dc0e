"""
tests/test_link_tokens.py -- Tests for auth/links.py (LinkTokenEngine).

Covers:
  - token entropy and uniqueness; only the HMAC is stored
  - binding rules per action kind
  - consume: not found, kind mismatch (record kept), double consume,
    expiry with the record still present, TTL boundary
  - domain effect: success commits with the delete, Failure or exception
    rolls back and keeps the token
  - collision retry and the bounded attempt count
  - concurrent consumers: exactly one wins
  - supersede policy, discard, purge_expired
"""

from __future__ import annotations

import threading
from datetime import timedelta

import pytest
from sqlalchemy import text

from auth import links as links_module
from auth.links import MAX_ISSUE_ATTEMPTS, LinkTokenCollisionError, LinkTokenEngine
from auth.tokens import generate_link_token, hash_link_token
from core.actions import ActionKind
from core.results import NotFound, Ok, TokenExpired, TokenKindMismatch, TokenNotFound


class TestIssue:
    def test_generated_tokens_are_unique(self) -> None:
        """10,000 generated tokens never repeat."""
        tokens = {generate_link_token() for _ in range(10_000)}
        assert len(tokens) == 10_000

    def test_token_has_128_bits(self) -> None:
        # token_urlsafe(16) -> 22 base64url characters
        assert len(generate_link_token()) == 22

    def test_issue_returns_raw_token_and_binding(self, links: LinkTokenEngine, clock) -> None:
        issued = links.issue(ActionKind.PASSWORD_RESET, "u@example.com", subject_user_id=5)
        assert issued.kind is ActionKind.PASSWORD_RESET
        assert issued.email == "u@example.com"
        assert issued.subject_user_id == 5
        assert issued.created_at == clock.now

    def test_store_holds_hash_not_raw_token(self, links: LinkTokenEngine, user_store) -> None:
        issued = links.issue(ActionKind.ACCOUNT_CONFIRMATION, "u@example.com", subject_user_id=1)
        with user_store.engine.connect() as conn:
            stored = [row[0] for row in conn.execute(text("SELECT token_hash FROM link_tokens"))]
        assert stored == [hash_link_token(issued.token)]
        assert issued.token not in stored

    @pytest.mark.parametrize(
        "kind,kwargs",
        [
            (ActionKind.TEAM_INVITE, {}),
            (ActionKind.TEAM_INVITE, {"subject_team_id": 1, "subject_user_id": 2}),
            (ActionKind.OWNERSHIP_TRANSFER, {"subject_user_id": 1}),
            (ActionKind.OWNERSHIP_TRANSFER, {"subject_user_id": 1, "subject_team_id": 2, "resource_id": 3}),
            (ActionKind.OWNERSHIP_TRANSFER, {"subject_user_id": 1, "resource_id": 3}),
            (ActionKind.PASSWORD_RESET, {"subject_user_id": 1, "prior_owner_user_id": 2}),
            (ActionKind.PASSWORD_RESET, {"subject_team_id": 1}),
        ],
    )
    def test_rejects_binding_that_does_not_fit_kind(self, links: LinkTokenEngine, kind, kwargs) -> None:
        with pytest.raises(ValueError):
            links.issue(kind, "u@example.com", **kwargs)

    def test_email_only_confirmation_is_allowed(self, links: LinkTokenEngine) -> None:
        issued = links.issue(ActionKind.ACCOUNT_CONFIRMATION, "u@example.com")
        assert issued.subject_user_id is None

    def test_collision_is_retried(self, links: LinkTokenEngine, monkeypatch) -> None:
        """A generator repeating a live value is retried until a free value appears."""
        first = links.issue(ActionKind.PASSWORD_RESET, "a@example.com", subject_user_id=1)
        values = iter([first.token, first.token, "fresh-token-value"])
        monkeypatch.setattr(links_module, "generate_link_token", lambda: next(values))

        second = links.issue(ActionKind.PASSWORD_RESET, "b@example.com", subject_user_id=2)

        assert second.token == "fresh-token-value"
        assert links.consume(first.token, ActionKind.PASSWORD_RESET).value.email == "a@example.com"

    def test_collision_attempts_are_bounded(self, links: LinkTokenEngine, monkeypatch) -> None:
        first = links.issue(ActionKind.PASSWORD_RESET, "a@example.com", subject_user_id=1)
        calls = []

        def stuck() -> str:
            calls.append(1)
            return first.token

        monkeypatch.setattr(links_module, "generate_link_token", stuck)
        with pytest.raises(LinkTokenCollisionError):
            links.issue(ActionKind.PASSWORD_RESET, "b@example.com", subject_user_id=2)
        assert len(calls) == MAX_ISSUE_ATTEMPTS


class TestConsume:
    def test_unknown_token(self, links: LinkTokenEngine) -> None:
        assert isinstance(links.consume("never-issued", ActionKind.PASSWORD_RESET), TokenNotFound)

    def test_success_returns_binding(self, links: LinkTokenEngine) -> None:
        issued = links.issue(ActionKind.TEAM_INVITE, "inv@example.com", subject_team_id=9)
        result = links.consume(issued.token, ActionKind.TEAM_INVITE)
        assert result.ok
        assert result.value.subject_team_id == 9
        assert result.value.email == "inv@example.com"
        assert result.value.kind is ActionKind.TEAM_INVITE

    def test_kind_mismatch_keeps_record(self, links: LinkTokenEngine) -> None:
        issued = links.issue(ActionKind.PASSWORD_RESET, "u@example.com", subject_user_id=5)

        assert isinstance(links.consume(issued.token, ActionKind.TEAM_INVITE), TokenKindMismatch)
        assert links.consume(issued.token, ActionKind.PASSWORD_RESET).ok

    def test_double_consume(self, links: LinkTokenEngine) -> None:
        issued = links.issue(ActionKind.PASSWORD_RESET, "u@example.com", subject_user_id=5)
        assert links.consume(issued.token, ActionKind.PASSWORD_RESET).ok
        assert isinstance(links.consume(issued.token, ActionKind.PASSWORD_RESET), TokenNotFound)

    def test_expired_token_fails_with_record_present(self, links: LinkTokenEngine, user_store, clock) -> None:
        """Expiry is checked at consume time even though purge has not run."""
        issued = links.issue(ActionKind.PASSWORD_RESET, "u@example.com", subject_user_id=5)
        clock.advance(hours=2, seconds=1)

        assert isinstance(links.consume(issued.token, ActionKind.PASSWORD_RESET), TokenExpired)
        assert user_store.count_link_tokens() == 1

    def test_token_valid_exactly_at_ttl(self, links: LinkTokenEngine, clock) -> None:
        issued = links.issue(ActionKind.PASSWORD_RESET, "u@example.com", subject_user_id=5)
        clock.advance(hours=2)
        assert links.consume(issued.token, ActionKind.PASSWORD_RESET).ok

    def test_ttl_differs_per_kind(self, links: LinkTokenEngine) -> None:
        ttls = {links.ttl(kind) for kind in ActionKind}
        assert len(ttls) == len(ActionKind)
        assert links.ttl(ActionKind.PASSWORD_RESET) == timedelta(hours=2)


class TestDomainEffect:
    def test_effect_runs_on_consume_connection(self, links: LinkTokenEngine) -> None:
        issued = links.issue(ActionKind.PASSWORD_RESET, "u@example.com", subject_user_id=5)
        seen = []

        def effect(conn, binding):
            seen.append(binding.subject_user_id)
            return Ok()

        assert links.consume(issued.token, ActionKind.PASSWORD_RESET, apply=effect).ok
        assert seen == [5]

    def test_failed_effect_keeps_token(self, links: LinkTokenEngine, user_store) -> None:
        issued = links.issue(ActionKind.PASSWORD_RESET, "u@example.com", subject_user_id=5)

        result = links.consume(issued.token, ActionKind.PASSWORD_RESET, apply=lambda c, b: NotFound("User", "5"))

        assert result == NotFound("User", "5")
        assert user_store.count_link_tokens() == 1
        assert links.consume(issued.token, ActionKind.PASSWORD_RESET).ok

    def test_raising_effect_keeps_token(self, links: LinkTokenEngine, user_store) -> None:
        issued = links.issue(ActionKind.PASSWORD_RESET, "u@example.com", subject_user_id=5)

        def boom(conn, binding):
            raise RuntimeError("effect failed")

        with pytest.raises(RuntimeError):
            links.consume(issued.token, ActionKind.PASSWORD_RESET, apply=boom)
        assert user_store.count_link_tokens() == 1


class TestConcurrency:
    def test_exactly_one_concurrent_consumer_wins(self, links: LinkTokenEngine) -> None:
        issued = links.issue(ActionKind.TEAM_INVITE, "inv@example.com", subject_team_id=3)
        workers = 8
        barrier = threading.Barrier(workers)
        results = []
        lock = threading.Lock()

        def consume() -> None:
            barrier.wait()
            outcome = links.consume(issued.token, ActionKind.TEAM_INVITE)
            with lock:
                results.append(outcome)

        threads = [threading.Thread(target=consume) for _ in range(workers)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sum(1 for r in results if r.ok) == 1
        assert all(isinstance(r, TokenNotFound) for r in results if not r.ok)


class TestLifecycleHelpers:
    def test_tokens_coexist_without_supersede(self, links: LinkTokenEngine) -> None:
        first = links.issue(ActionKind.PASSWORD_RESET, "u@example.com", subject_user_id=5)
        second = links.issue(ActionKind.PASSWORD_RESET, "u@example.com", subject_user_id=5)
        assert links.consume(first.token, ActionKind.PASSWORD_RESET).ok
        assert links.consume(second.token, ActionKind.PASSWORD_RESET).ok

    def test_supersede_invalidates_prior_tokens(self, user_store, settings, clock) -> None:
        strict = LinkTokenEngine(
            user_store, settings.model_copy(update={"supersede_prior_link_tokens": True}), clock=clock
        )
        first = strict.issue(ActionKind.PASSWORD_RESET, "u@example.com", subject_user_id=5)
        other_user = strict.issue(ActionKind.PASSWORD_RESET, "v@example.com", subject_user_id=6)
        second = strict.issue(ActionKind.PASSWORD_RESET, "u@example.com", subject_user_id=5)

        assert isinstance(strict.consume(first.token, ActionKind.PASSWORD_RESET), TokenNotFound)
        assert strict.consume(second.token, ActionKind.PASSWORD_RESET).ok
        assert strict.consume(other_user.token, ActionKind.PASSWORD_RESET).ok

    def test_discard(self, links: LinkTokenEngine) -> None:
        issued = links.issue(ActionKind.ACCOUNT_CONFIRMATION, "u@example.com", subject_user_id=1)
        assert links.discard(issued.token) is True
        assert links.discard(issued.token) is False
        assert isinstance(links.consume(issued.token, ActionKind.ACCOUNT_CONFIRMATION), TokenNotFound)

    def test_purge_removes_only_expired(self, links: LinkTokenEngine, user_store, clock) -> None:
        links.issue(ActionKind.PASSWORD_RESET, "u@example.com", subject_user_id=5)  # 2h TTL
        invite = links.issue(ActionKind.TEAM_INVITE, "inv@example.com", subject_team_id=1)  # 168h TTL
        clock.advance(hours=3)

        assert links.purge_expired() == 1
        assert user_store.count_link_tokens() == 1
        assert links.consume(invite.token, ActionKind.TEAM_INVITE).ok
