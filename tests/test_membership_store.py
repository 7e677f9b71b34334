"""Tests for the membership edge store and derived membership state."""

import pytest

from graph_svc.descriptor import SubjectKind, encode_descriptor
from graph_svc.errors import InvalidArgumentError, InvalidDescriptorError, NotFoundError
from graph_svc.memberships import Membership, MembershipState, MembershipStore, TraversalDirection
from graph_svc.subjects import CreationContext, SubjectStore


MISSING_USER = str(encode_descriptor(SubjectKind.USER, "0f8fad5b-d9cb-469f-a165-70867728950e"))


class TestAddRemove:
    def test_add_and_exists(self, memberships, make_user, make_group):
        alice, readers = make_user("alice"), make_group("readers")

        edge = memberships.add(alice.descriptor, readers.descriptor)

        assert edge == Membership(alice.descriptor, readers.descriptor)
        assert memberships.exists(alice.descriptor, readers.descriptor)
        assert memberships.get(alice.descriptor, readers.descriptor) == edge

    def test_add_is_idempotent(self, memberships, make_user, make_group):
        alice, readers = make_user("alice"), make_group("readers")

        memberships.add(alice.descriptor, readers.descriptor)
        memberships.add(alice.descriptor, readers.descriptor)

        assert memberships.edge_count() == 1
        assert len(memberships.list_edges(alice.descriptor, TraversalDirection.UP)) == 1

    def test_remove_is_idempotent(self, memberships, make_user, make_group):
        alice, readers = make_user("alice"), make_group("readers")
        memberships.add(alice.descriptor, readers.descriptor)

        memberships.remove(alice.descriptor, readers.descriptor)
        memberships.remove(alice.descriptor, readers.descriptor)

        assert not memberships.exists(alice.descriptor, readers.descriptor)
        assert memberships.edge_count() == 0

    def test_remove_absent_edge(self, memberships, make_user, make_group):
        memberships.remove(make_user("alice").descriptor, make_group("readers").descriptor)

    def test_re_add_after_remove(self, memberships, make_user, make_group):
        alice, readers = make_user("alice"), make_group("readers")
        memberships.add(alice.descriptor, readers.descriptor)
        memberships.remove(alice.descriptor, readers.descriptor)
        memberships.add(alice.descriptor, readers.descriptor)

        assert memberships.exists(alice.descriptor, readers.descriptor)

    def test_group_in_group(self, memberships, make_group):
        inner, outer = make_group("inner"), make_group("outer")
        memberships.add(inner.descriptor, outer.descriptor)
        assert memberships.exists(inner.descriptor, outer.descriptor)


class TestAddValidation:
    def test_user_self_membership(self, memberships, make_user):
        alice = make_user("alice")
        with pytest.raises(InvalidArgumentError):
            memberships.add(alice.descriptor, alice.descriptor)

    def test_group_self_membership(self, memberships, make_group):
        readers = make_group("readers")
        with pytest.raises(InvalidArgumentError, match="itself"):
            memberships.add(readers.descriptor, readers.descriptor)

    def test_user_cannot_be_container(self, memberships, make_user):
        alice, bob = make_user("alice"), make_user("bob")
        with pytest.raises(InvalidArgumentError, match="container"):
            memberships.add(alice.descriptor, bob.descriptor)

    def test_scope_cannot_be_member(self, subjects, memberships, make_group):
        scope = subjects.create("scope", CreationContext(display_name="Web"))
        with pytest.raises(InvalidArgumentError, match="scope"):
            memberships.add(scope.descriptor, make_group("readers").descriptor)

    def test_group_in_scope(self, subjects, memberships, make_group):
        scope = subjects.create("scope", CreationContext(display_name="Web"))
        readers = make_group("readers")
        memberships.add(readers.descriptor, scope.descriptor)
        assert memberships.exists(readers.descriptor, scope.descriptor)

    def test_missing_member(self, memberships, make_group):
        with pytest.raises(NotFoundError):
            memberships.add(MISSING_USER, make_group("readers").descriptor)

    def test_malformed_descriptor(self, memberships, make_group):
        with pytest.raises(InvalidDescriptorError):
            memberships.add("usr.garbage", make_group("readers").descriptor)


class TestExistenceAndGet:
    def test_exists_false_for_absent_edge(self, memberships, make_user, make_group):
        assert memberships.exists(make_user("alice").descriptor, make_group("readers").descriptor) is False

    def test_exists_raises_only_for_malformed(self, memberships, make_group):
        with pytest.raises(InvalidDescriptorError):
            memberships.exists("not-a-descriptor", make_group("readers").descriptor)

    def test_get_absent_edge(self, memberships, make_user, make_group):
        with pytest.raises(NotFoundError):
            memberships.get(make_user("alice").descriptor, make_group("readers").descriptor)

    def test_exists_and_get_agree(self, memberships, make_user, make_group):
        alice, readers, writers = make_user("alice"), make_group("readers"), make_group("writers")
        memberships.add(alice.descriptor, readers.descriptor)

        for container in (readers, writers):
            exists = memberships.exists(alice.descriptor, container.descriptor)
            try:
                memberships.get(alice.descriptor, container.descriptor)
                found = True
            except NotFoundError:
                found = False
            assert exists == found


class TestKindAliases:
    """A descriptor re-encoded under another kind names no subject."""

    @pytest.fixture
    def edge(self, memberships, make_user, make_group):
        alice, devs = make_user("alice"), make_group("devs")
        memberships.add(alice.descriptor, devs.descriptor)
        alias = str(encode_descriptor(SubjectKind.GROUP, alice.storage_key))
        return alice, devs, alias

    def test_exists_is_false(self, memberships, edge):
        alice, devs, alias = edge
        assert memberships.exists(alias, devs.descriptor) is False

    def test_get_is_not_found(self, memberships, edge):
        alice, devs, alias = edge
        with pytest.raises(NotFoundError):
            memberships.get(alias, devs.descriptor)

    def test_remove_is_noop(self, memberships, edge):
        alice, devs, alias = edge
        memberships.remove(alias, devs.descriptor)
        assert memberships.exists(alice.descriptor, devs.descriptor)

    def test_container_alias(self, memberships, edge):
        alice, devs, _ = edge
        scope_alias = str(encode_descriptor(SubjectKind.SCOPE, devs.storage_key))
        assert memberships.exists(alice.descriptor, scope_alias) is False

    def test_get_returns_stored_descriptors(self, memberships, edge):
        alice, devs, _ = edge
        membership = memberships.get(alice.descriptor, devs.descriptor)
        assert membership.member_descriptor == alice.descriptor
        assert membership.container_descriptor == devs.descriptor

    def test_unknown_subject_is_absent(self, memberships, edge):
        _, devs, _ = edge
        assert memberships.exists(MISSING_USER, devs.descriptor) is False
        memberships.remove(MISSING_USER, devs.descriptor)


class TestListEdges:
    def test_direction_symmetry(self, memberships, make_user, make_group):
        alice, bob = make_user("alice"), make_user("bob")
        readers, writers = make_group("readers"), make_group("writers")
        memberships.add(alice.descriptor, readers.descriptor)
        memberships.add(alice.descriptor, writers.descriptor)
        memberships.add(bob.descriptor, readers.descriptor)

        up = memberships.list_edges(alice.descriptor, TraversalDirection.UP)
        assert {e.container_descriptor for e in up} == {readers.descriptor, writers.descriptor}

        for edge in up:
            down = memberships.list_edges(edge.container_descriptor, TraversalDirection.DOWN)
            assert edge in down

        down = memberships.list_edges(readers.descriptor, "down")
        assert {e.member_descriptor for e in down} == {alice.descriptor, bob.descriptor}

    def test_direct_edges_only(self, memberships, make_user, make_group):
        alice, inner, outer = make_user("alice"), make_group("inner"), make_group("outer")
        memberships.add(alice.descriptor, inner.descriptor)
        memberships.add(inner.descriptor, outer.descriptor)

        up = memberships.list_edges(alice.descriptor, TraversalDirection.UP)
        assert [e.container_descriptor for e in up] == [inner.descriptor]

    def test_unknown_direction_rejected(self, memberships, make_user):
        with pytest.raises(InvalidArgumentError):
            memberships.list_edges(make_user("alice").descriptor, TraversalDirection.UNKNOWN)

    def test_remove_all(self, memberships, make_user, make_group):
        alice, readers, writers = make_user("alice"), make_group("readers"), make_group("writers")
        memberships.add(alice.descriptor, readers.descriptor)
        memberships.add(alice.descriptor, writers.descriptor)

        assert memberships.remove_all(alice.descriptor, TraversalDirection.UP) == 2
        assert memberships.list_edges(alice.descriptor, TraversalDirection.UP) == []
        assert memberships.list_edges(readers.descriptor, TraversalDirection.DOWN) == []


class TestMembershipState:
    def test_active_by_default(self, org):
        assert org.memberships.compute_state(org.descriptor("alice")) == MembershipState.ACTIVE

    def test_disabled_subject(self, org):
        org.subjects.disable(org.memberships.require_subject(org.descriptor("alice")).storage_key)
        assert org.memberships.compute_state(org.descriptor("alice")) == MembershipState.INACTIVE

    def test_disabled_ancestor_group(self, org):
        # carol -> org-admins -> web-admins
        org.subjects.disable(org.memberships.require_subject(org.descriptor("web-admins")).storage_key)
        assert org.memberships.compute_state(org.descriptor("carol")) == MembershipState.INACTIVE
        assert org.memberships.compute_state(org.descriptor("bob")) == MembershipState.ACTIVE

    def test_disabled_enclosing_scope(self, org):
        org.subjects.disable(org.memberships.require_subject(org.descriptor("web")).storage_key)

        assert org.memberships.compute_state(org.descriptor("web-contributors")) == MembershipState.INACTIVE
        assert org.memberships.compute_state(org.descriptor("bob")) == MembershipState.INACTIVE
        assert org.memberships.compute_state(org.descriptor("fabrikam")) == MembershipState.ACTIVE

    def test_disable_does_not_cascade(self, org):
        org.subjects.disable(org.memberships.require_subject(org.descriptor("web-admins")).storage_key)
        alice = org.memberships.require_subject(org.descriptor("alice"))
        assert not alice.disabled

    def test_cycle_terminates(self, memberships, make_group):
        a, b, c = make_group("a"), make_group("b"), make_group("c")
        memberships.add(a.descriptor, b.descriptor)
        memberships.add(b.descriptor, c.descriptor)
        memberships.add(c.descriptor, a.descriptor)

        assert memberships.compute_state(a.descriptor) == MembershipState.ACTIVE

    def test_depth_bound(self):
        subjects = SubjectStore()
        store = MembershipStore(subjects, state_max_depth=2)
        chain = [subjects.create("group", CreationContext(display_name=f"g{i}")) for i in range(4)]
        for lower, upper in zip(chain, chain[1:]):
            store.add(lower.descriptor, upper.descriptor)
        subjects.disable(chain[3].storage_key)

        # g3 sits three levels above g0, beyond the bound
        assert store.compute_state(chain[0].descriptor) == MembershipState.ACTIVE
        assert store.compute_state(chain[1].descriptor) == MembershipState.INACTIVE

    def test_missing_subject(self, memberships, make_user):
        descriptor = make_user("alice").descriptor
        other = SubjectStore()
        with pytest.raises(NotFoundError):
            MembershipStore(other).compute_state(descriptor)

