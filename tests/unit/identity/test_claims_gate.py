"""
Name: Claims Gate Tests

Responsibilities:
  - Test list predicates (membership sub-query, bypass)
  - Test point decisions for accounts and users (read / modify)
  - Test which decisions need a membership probe

Notes:
  - The gate is pure: membership facts are passed in
"""

import pytest

from saaskit.crosscutting.exceptions import ForbiddenError
from saaskit.identity.claims import Claims
from saaskit.identity.claims_gate import (
    ALLOW,
    BYPASS,
    NO_MEMBERSHIP,
    MembershipFact,
    Operation,
    Outcome,
    account_list_predicate,
    decide_account,
    decide_create,
    decide_user,
    membership_probe,
    needs_account_membership,
    needs_user_membership,
    user_list_predicate,
)

READ, MODIFY = Operation.READ, Operation.MODIFY
ADMIN_MEMBER = MembershipFact.from_roles(["admin"])
USER_MEMBER = MembershipFact.from_roles(["user"])


@pytest.mark.unit
class TestListPredicates:
    def test_internal_claims_bypass(self):
        assert account_list_predicate(Claims()) is None
        assert user_list_predicate(Claims()) is None

    def test_audience_and_subject_branches(self):
        pred = account_list_predicate(Claims(audience="acc1", subject="u1"))
        sql, args = pred.render()
        assert sql == (
            "id IN (SELECT account_id FROM users_accounts"
            " WHERE (account_id = ? OR user_id = ?))"
        )
        assert args == ["acc1", "u1"]

    def test_empty_branch_is_omitted(self):
        sql, args = account_list_predicate(Claims(subject="u1"), "account_id").render()
        assert sql == (
            "account_id IN (SELECT account_id FROM users_accounts WHERE user_id = ?)"
        )
        assert args == ["u1"]

    def test_users_are_listed_through_memberships(self):
        sql, args = user_list_predicate(Claims(audience="acc1")).render()
        assert sql == "id IN (SELECT user_id FROM users_accounts WHERE account_id = ?)"
        assert args == ["acc1"]


@pytest.mark.unit
class TestAccountDecisions:
    def test_internal_is_bypass(self):
        assert decide_account(Claims(), "acc1", MODIFY) == BYPASS

    def test_audience_match_reads_without_probe(self):
        claims = Claims(audience="acc1", subject="u1", roles=("user",))
        assert needs_account_membership(claims, "acc1", READ) is False
        assert decide_account(claims, "acc1", READ) == ALLOW

    def test_audience_match_admin_modifies_without_probe(self):
        claims = Claims(audience="acc1", subject="u1", roles=("admin",))
        assert needs_account_membership(claims, "acc1", MODIFY) is False
        assert decide_account(claims, "acc1", MODIFY) == ALLOW

    def test_audience_match_non_admin_needs_admin_membership(self):
        claims = Claims(audience="acc1", subject="u1", roles=("user",))
        assert needs_account_membership(claims, "acc1", MODIFY) is True
        assert decide_account(claims, "acc1", MODIFY, USER_MEMBER).outcome == Outcome.FORBIDDEN
        assert decide_account(claims, "acc1", MODIFY, ADMIN_MEMBER) == ALLOW

    def test_admin_on_other_account_is_forbidden_without_membership(self):
        claims = Claims(audience="acc1", subject="u1", roles=("admin",))
        assert needs_account_membership(claims, "acc2", MODIFY) is True
        decision = decide_account(claims, "acc2", MODIFY, NO_MEMBERSHIP)
        assert decision.outcome == Outcome.FORBIDDEN
        with pytest.raises(ForbiddenError):
            decision.enforce()

    def test_membership_grants_read_on_other_account(self):
        claims = Claims(audience="acc1", subject="u1", roles=("admin",))
        assert decide_account(claims, "acc2", READ, USER_MEMBER) == ALLOW
        assert decide_account(claims, "acc2", MODIFY, USER_MEMBER).outcome == Outcome.FORBIDDEN
        assert decide_account(claims, "acc2", MODIFY, ADMIN_MEMBER) == ALLOW

    def test_audience_only_claims_cannot_probe(self):
        claims = Claims(audience="acc1", roles=("admin",))
        assert needs_account_membership(claims, "acc2", READ) is False
        assert decide_account(claims, "acc2", READ).outcome == Outcome.FORBIDDEN

    @pytest.mark.parametrize("target", ["acc1", "acc2"])
    @pytest.mark.parametrize("fact", [NO_MEMBERSHIP, USER_MEMBER])
    def test_non_admin_never_modifies(self, target, fact):
        claims = Claims(audience="acc1", subject="u1", roles=("user",))
        assert not decide_account(claims, target, MODIFY, fact).allowed

    @pytest.mark.parametrize("op", [READ, MODIFY])
    @pytest.mark.parametrize("fact", [NO_MEMBERSHIP, USER_MEMBER, ADMIN_MEMBER])
    def test_empty_claims_always_pass(self, op, fact):
        assert decide_account(Claims(), "anything", op, fact).allowed


@pytest.mark.unit
class TestUserDecisions:
    def test_self_is_allowed_without_probe(self):
        claims = Claims(audience="acc1", subject="u1", roles=("user",))
        assert needs_user_membership(claims, "u1", MODIFY) is False
        assert decide_user(claims, "u1", MODIFY) == ALLOW

    def test_other_user_needs_membership_in_audience(self):
        claims = Claims(audience="acc1", subject="u1", roles=("user",))
        assert needs_user_membership(claims, "u2", READ) is True
        assert decide_user(claims, "u2", READ).outcome == Outcome.FORBIDDEN
        assert decide_user(claims, "u2", READ, USER_MEMBER) == ALLOW
        assert decide_user(claims, "u2", MODIFY, USER_MEMBER).outcome == Outcome.FORBIDDEN

    def test_admin_modifies_linked_user(self):
        claims = Claims(audience="acc1", subject="u1", roles=("admin",))
        assert decide_user(claims, "u2", MODIFY, USER_MEMBER) == ALLOW

    def test_subject_only_claims_see_only_themselves(self):
        claims = Claims(subject="u1")
        assert needs_user_membership(claims, "u2", READ) is False
        assert decide_user(claims, "u2", READ).outcome == Outcome.FORBIDDEN

    def test_internal_is_bypass(self):
        assert decide_user(Claims(), "u2", MODIFY) == BYPASS


@pytest.mark.unit
class TestCreateAndProbe:
    def test_decide_create(self):
        assert decide_create(Claims()) == BYPASS
        assert decide_create(Claims(audience="acc1", roles=("admin",))) == ALLOW
        assert not decide_create(Claims(audience="acc1", roles=("user",))).allowed

    def test_membership_probe_statement(self):
        assert membership_probe("acc1", "u1").build() == (
            "SELECT roles FROM users_accounts WHERE account_id = ? AND user_id = ? LIMIT 1",
            ["acc1", "u1"],
        )

    def test_membership_fact(self):
        assert MembershipFact.from_roles(None).exists is False
        assert MembershipFact.from_roles([]).exists is True
        assert ADMIN_MEMBER.is_admin and not USER_MEMBER.is_admin
