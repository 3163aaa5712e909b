"""
Property-based tests for client selector expansion and list set algebra.

Uses Hypothesis for property-based testing to verify how @tag, wildcard and
literal selectors resolve to client names, and how service lists are merged
and reduced.
"""

from hypothesis import given, settings
from hypothesis import strategies as st

from adguard_switchboard.adguard_client import AdGuardClient, merge, remove, wildcard_match
from adguard_switchboard.config import ServerConfig
from adguard_switchboard.models import ClientRecord

from fake_adguard import make_client


NAMES = ["kid", "tv1", "tv2", "tv10", "laptop", "phone", "a.b", "x+y"]
TAGS = ["family", "media", "work"]


def records(*clients: dict) -> list[ClientRecord]:
    return [ClientRecord.from_dict(c) for c in clients]


@st.composite
def client_list_strategy(draw) -> list[ClientRecord]:
    """Generate client lists with unique names and random tags."""
    names = draw(st.lists(st.sampled_from(NAMES), unique=True))
    return [
        ClientRecord.from_dict(make_client(
            name,
            tags=tuple(draw(st.lists(st.sampled_from(TAGS), unique=True))),
        ))
        for name in names
    ]


@st.composite
def selector_strategy(draw) -> str:
    """Generate literal, @tag and wildcard selectors."""
    return draw(st.one_of(
        st.sampled_from(NAMES + ["ghost"]),
        st.sampled_from(TAGS + ["none"]).map(lambda t: f"@{t}"),
        st.sampled_from(["tv*", "*", "*o*", "t?1*", "a.*", "x+*"]),
    ))


class TestSelectorExpansionProperty:
    """Property-based tests for expand_selectors."""

    def setup_method(self) -> None:
        self.api = AdGuardClient(ServerConfig())

    def test_tag_and_wildcard_example(self) -> None:
        clients = records(
            make_client("kid", tags=("family",)),
            make_client("tv1"),
        )
        assert self.api.expand_selectors(["@family", "tv*"], clients) == ["kid", "tv1"]

    def test_overlapping_selectors_do_not_duplicate(self) -> None:
        clients = records(
            make_client("tv1", tags=("media",)),
            make_client("tv2", tags=("media",)),
        )
        names = self.api.expand_selectors(["@media", "tv*", "tv1"], clients)
        assert names == ["tv1", "tv2"]

    @given(clients=client_list_strategy(), selectors=st.lists(selector_strategy()))
    @settings(max_examples=100)
    def test_expansion_has_no_duplicates(
        self,
        clients: list[ClientRecord],
        selectors: list[str],
    ) -> None:
        """
        *For any* client list and selectors, the expansion SHALL contain each
        name at most once.
        """
        names = self.api.expand_selectors(selectors, clients)
        assert len(names) == len(set(names))

    @given(clients=client_list_strategy(), tag=st.sampled_from(TAGS))
    @settings(max_examples=100)
    def test_tag_resolves_in_client_order(self, clients: list[ClientRecord], tag: str) -> None:
        """
        *For any* tag, '@tag' SHALL resolve to exactly the clients carrying the
        tag, in client-list order.
        """
        expected = [c.name for c in clients if tag in c.tags]
        assert self.api.expand_selectors([f"@{tag}"], clients) == expected

    @given(clients=client_list_strategy(), literal=st.sampled_from(NAMES + ["ghost"]))
    @settings(max_examples=100)
    def test_literals_pass_through(self, clients: list[ClientRecord], literal: str) -> None:
        """
        *For any* literal token, the name SHALL pass through even if no such
        client is known.
        """
        assert self.api.expand_selectors([literal], clients) == [literal]

    @given(selectors=st.lists(selector_strategy(), min_size=1))
    @settings(max_examples=100)
    def test_empty_cache_resolves_only_literals(self, selectors: list[str]) -> None:
        """
        *For any* selectors, expanding against a never-fetched cache SHALL
        resolve tag and wildcard tokens to nothing.
        """
        names = AdGuardClient(ServerConfig()).expand_selectors(selectors)
        for name in names:
            assert not name.startswith("@")
            assert "*" not in name
        literals = [s for s in selectors if not s.startswith("@") and "*" not in s]
        assert names == list(dict.fromkeys(literals))

    def test_expansion_defaults_to_cache(self) -> None:
        self.api.cache.set_clients(records(make_client("tv1"), make_client("kid")))
        assert self.api.expand_selectors(["tv*"]) == ["tv1"]


class TestWildcardMatchProperty:
    """Property-based tests for wildcard_match."""

    @given(name=st.text(min_size=0, max_size=30))
    @settings(max_examples=100)
    def test_star_matches_everything(self, name: str) -> None:
        """
        *For any* name, '*' SHALL match.
        """
        assert wildcard_match("*", name)

    def test_wildcards_match_line_breaks(self) -> None:
        assert wildcard_match("*", "\n")
        assert wildcard_match("tv*", "tv\nroom")
        assert wildcard_match("a?c", "a\nc")
        assert wildcard_match("TV*", "tv\n", case_sensitive=False)
        assert not wildcard_match("tv?", "tv\n\n")

    @given(name=st.text(
        alphabet=st.characters(blacklist_categories=("Cs",)),
        min_size=1,
        max_size=30,
    ))
    @settings(max_examples=100)
    def test_pattern_without_wildcards_is_literal(self, name: str) -> None:
        """
        *For any* name free of '*' and '?', the name used as a pattern SHALL
        match only itself (regex metacharacters are literal).
        """
        if "*" in name or "?" in name:
            return
        assert wildcard_match(name, name)
        assert not wildcard_match(name, name + "x")
        assert not wildcard_match(name, "x" + name)

    def test_question_mark_matches_one_character(self) -> None:
        assert wildcard_match("tv?", "tv1")
        assert not wildcard_match("tv?", "tv10")
        assert not wildcard_match("tv?", "tv")

    def test_match_is_anchored(self) -> None:
        assert wildcard_match("tv*", "tv10")
        assert not wildcard_match("tv*", "smarttv1")
        assert wildcard_match("*tv*", "smarttv1")

    def test_metacharacters_are_literal(self) -> None:
        assert wildcard_match("a.*", "a.b")
        assert not wildcard_match("a.*", "axb")
        assert wildcard_match("x+*", "x+y")
        assert not wildcard_match("x+*", "xxy")

    def test_case_sensitivity(self) -> None:
        assert not wildcard_match("TV*", "tv1")
        assert wildcard_match("TV*", "tv1", case_sensitive=False)


class TestListAlgebraProperty:
    """Property-based tests for merge and remove."""

    @given(
        base=st.lists(st.sampled_from(["a", "b", "c", "d", "e"]), unique=True),
        extra=st.lists(st.sampled_from(["a", "b", "c", "d", "e", "f"]), unique=True),
    )
    @settings(max_examples=100)
    def test_merge_is_ordered_union(self, base: list[str], extra: list[str]) -> None:
        """
        *For any* lists, merge SHALL keep base's order, append new items of
        extra in their order, and contain no duplicates.
        """
        merged = merge(base, extra)
        assert merged[:len(base)] == base
        assert merged[len(base):] == [e for e in extra if e not in base]
        assert set(merged) == set(base) | set(extra)

    @given(
        base=st.lists(st.sampled_from(["a", "b", "c", "d", "e"]), unique=True),
        drop=st.lists(st.sampled_from(["a", "b", "c", "x"]), unique=True),
    )
    @settings(max_examples=100)
    def test_remove_is_ordered_difference(self, base: list[str], drop: list[str]) -> None:
        """
        *For any* lists, remove SHALL keep base's order minus every dropped item.
        """
        remaining = remove(base, drop)
        assert remaining == [b for b in base if b not in drop]

    @given(
        base=st.lists(st.sampled_from(["a", "b", "c"]), unique=True),
        services=st.lists(st.sampled_from(["a", "b", "c", "d"]), unique=True),
    )
    @settings(max_examples=100)
    def test_merge_then_remove_drops_all_services(
        self,
        base: list[str],
        services: list[str],
    ) -> None:
        """
        *For any* list, merging services and then removing them SHALL leave
        none of the services behind.
        """
        result = remove(merge(base, services), services)
        assert not set(result) & set(services)
        assert result == [b for b in base if b not in services]


def test_brackets_are_not_character_classes() -> None:
    assert wildcard_match("[ab]*", "[ab]c")
    assert not wildcard_match("[ab]*", "ac")
