import pytest

from errors import NotFoundError
from recipients import (
    ExplicitTokens,
    Group,
    SingleToken,
    UserByEmail,
    UserById,
    recipient_from_fields,
)
from resolver import GroupMember, TokenResolver


class TestRecipientFromFields:
    def test_tokens_win_over_everything(self):
        spec = recipient_from_fields(
            tokens=["a", "b"], fcm_token="c", user_id="u", user_email="e@x", group_name="g"
        )
        assert spec == ExplicitTokens(("a", "b"))

    def test_single_token_beats_user(self):
        assert recipient_from_fields(fcm_token=" tok ", user_id="u") == SingleToken("tok")

    def test_user_id_beats_email_and_group(self):
        assert recipient_from_fields(user_id="u", user_email="e@x", group_name="g") == UserById("u")

    def test_email_beats_group(self):
        assert recipient_from_fields(user_email="e@x", group_name="g") == UserByEmail("e@x")

    def test_group_last(self):
        assert recipient_from_fields(group_name="runners") == Group("runners")

    def test_blank_values_fall_through(self):
        spec = recipient_from_fields(tokens=["", "  "], fcm_token="", user_id="   ", group_name="g")
        assert spec == Group("g")

    def test_nothing_usable(self):
        assert recipient_from_fields() is None
        assert recipient_from_fields(tokens=[], fcm_token=" ") is None


class TestTokenResolver:
    async def test_explicit_tokens_skip_the_store(self, store):
        tokens = await TokenResolver(store).resolve(ExplicitTokens(("x", "y", "x")))
        assert tokens == ["x", "y"]
        assert store.lookups == []

    async def test_user_tokens(self, store):
        assert await TokenResolver(store).resolve(UserById("user-1")) == ["tok-a", "tok-b"]

    async def test_email_resolves_through_user(self, store):
        assert await TokenResolver(store).resolve(UserByEmail("ana@example.com")) == ["tok-a", "tok-b"]
        assert store.lookups == ["ana@example.com", "user-1"]

    async def test_unknown_email_raises(self, store):
        with pytest.raises(NotFoundError):
            await TokenResolver(store).resolve(UserByEmail("ghost@example.com"))

    async def test_email_lookup_failure_degrades_to_empty(self, store):
        async def boom(email):
            raise RuntimeError("index missing")

        store.find_user_id_by_email = boom
        assert await TokenResolver(store).resolve(UserByEmail("ana@example.com")) == []

    async def test_store_failure_degrades_to_empty(self, store):
        store.fail_users.add("user-1")
        assert await TokenResolver(store).resolve(UserById("user-1")) == []

    async def test_group_union_without_duplicates(self, store):
        tokens = await TokenResolver(store).resolve(Group("runners"))
        assert tokens == ["tok-a", "tok-b", "tok-c"]

    async def test_group_member_failure_skips_only_that_member(self, store):
        store.fail_users.add("user-1")
        assert await TokenResolver(store).resolve(Group("runners")) == ["tok-b", "tok-c"]

    async def test_group_legacy_fallback(self, store):
        assert await TokenResolver(store).resolve(Group("legacy")) == ["tok-legacy"]

    async def test_unknown_group_is_empty(self, store):
        assert await TokenResolver(store).resolve(Group("nobody")) == []

    async def test_group_lookup_failure_is_empty(self, store):
        async def boom(name):
            raise RuntimeError("offline")

        store.query_users_in_group = boom
        assert await TokenResolver(store).resolve(Group("runners")) == []

    async def test_without_store_only_direct_tokens_resolve(self):
        resolver = TokenResolver()
        assert await resolver.resolve(SingleToken("t")) == ["t"]
        assert await resolver.resolve(UserById("user-1")) == []
        assert await resolver.resolve(Group("runners")) == []

    async def test_shared_token_across_members_is_kept_once(self, store):
        store.groups["pair"] = [GroupMember("user-2"), GroupMember("user-1")]
        assert await TokenResolver(store).resolve(Group("pair")) == ["tok-b", "tok-c", "tok-a"]

    async def test_group_breakdown_counts_tokens_per_member(self, store):
        store.groups["mixed"] = [
            GroupMember("user-1", email="ana@example.com", name="Ana"),
            GroupMember("user-empty", legacy_token="tok-legacy"),
            GroupMember("user-3"),
        ]
        resolution = await TokenResolver(store).resolve_with_members(Group("mixed"))

        assert resolution.tokens == ["tok-a", "tok-b", "tok-legacy"]
        assert [(m.user_id, m.email, m.name, m.token_count, m.has_token) for m in resolution.members] == [
            ("user-1", "ana@example.com", "Ana", 2, True),
            ("user-empty", None, None, 1, True),
            ("user-3", None, None, 0, False),
        ]

    async def test_direct_recipients_have_no_breakdown(self, store):
        resolution = await TokenResolver(store).resolve_with_members(UserById("user-1"))
        assert resolution.tokens == ["tok-a", "tok-b"]
        assert resolution.members == []
