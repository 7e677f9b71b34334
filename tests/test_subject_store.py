"""Tests for the subject store."""

import pytest

from graph_svc.descriptor import SubjectKind, parse_descriptor
from graph_svc.errors import ConflictError, InvalidArgumentError, NotFoundError
from graph_svc.subjects import CreationContext, Group, Scope, ScopeType, User


class TestCreate:
    def test_create_user(self, subjects):
        user = subjects.create(SubjectKind.USER, CreationContext(principal_name="alice@fabrikam.com", origin="AAD"))

        assert isinstance(user, User)
        assert user.display_name == "alice@fabrikam.com"
        assert user.origin == "aad"
        assert not user.disabled
        assert parse_descriptor(user.descriptor).storage_key == user.storage_key

    def test_create_group_in_scope(self, subjects):
        scope = subjects.create(SubjectKind.SCOPE, CreationContext(display_name="Web", scope_type=ScopeType.PROJECT))
        group = subjects.create(SubjectKind.GROUP, CreationContext(display_name="Readers"), scope_descriptor=scope.descriptor)

        assert isinstance(scope, Scope)
        assert scope.scope_type == ScopeType.PROJECT
        assert isinstance(group, Group)
        assert group.scope_descriptor == scope.descriptor

    def test_create_accepts_kind_string(self, subjects):
        assert subjects.create("group", CreationContext(display_name="Readers")).kind == SubjectKind.GROUP

    def test_explicit_storage_key(self, subjects):
        key = "0f8fad5b-d9cb-469f-a165-70867728950e"
        user = subjects.create(SubjectKind.USER, CreationContext(display_name="x"), storage_key=key.upper())
        assert user.storage_key == key

    def test_empty_context_rejected(self, subjects):
        with pytest.raises(InvalidArgumentError):
            subjects.create(SubjectKind.USER, CreationContext())

    def test_conflict_on_same_external_identity(self, subjects):
        first = subjects.create(SubjectKind.USER, CreationContext(origin="aad", origin_id="ABC"))

        with pytest.raises(ConflictError) as exc_info:
            subjects.create(SubjectKind.USER, CreationContext(origin="aad", origin_id="abc", display_name="other"))
        assert exc_info.value.existing_descriptor == first.descriptor

    def test_conflict_even_when_disabled(self, subjects):
        user = subjects.create(SubjectKind.USER, CreationContext(principal_name="gone@fabrikam.com"))
        subjects.disable(user.storage_key)

        with pytest.raises(ConflictError):
            subjects.create(SubjectKind.USER, CreationContext(principal_name="GONE@fabrikam.com"))

    def test_same_group_name_in_different_scopes(self, subjects):
        a = subjects.create(SubjectKind.SCOPE, CreationContext(display_name="A"))
        b = subjects.create(SubjectKind.SCOPE, CreationContext(display_name="B"))

        subjects.create(SubjectKind.GROUP, CreationContext(display_name="Readers"), scope_descriptor=a.descriptor)
        subjects.create(SubjectKind.GROUP, CreationContext(display_name="Readers"), scope_descriptor=b.descriptor)
        with pytest.raises(ConflictError):
            subjects.create(SubjectKind.GROUP, CreationContext(display_name="readers"), scope_descriptor=a.descriptor)

    def test_same_identity_different_kinds(self, subjects):
        subjects.create(SubjectKind.USER, CreationContext(display_name="Shared"))
        subjects.create(SubjectKind.GROUP, CreationContext(display_name="Shared"))
        assert len(subjects) == 2


class TestRead:
    def test_get(self, subjects, make_user):
        user = make_user("alice")
        assert subjects.get(user.storage_key) == user
        assert subjects.exists(user.storage_key)

    def test_get_missing(self, subjects):
        with pytest.raises(NotFoundError):
            subjects.get("0f8fad5b-d9cb-469f-a165-70867728950e")

    def test_find_missing(self, subjects):
        assert subjects.find("0f8fad5b-d9cb-469f-a165-70867728950e") is None

    def test_get_many_omits_missing(self, subjects, make_user):
        user = make_user("alice")
        found = subjects.get_many([user.storage_key, "0f8fad5b-d9cb-469f-a165-70867728950e"])
        assert list(found) == [user.storage_key]

    def test_all_subjects_filters(self, subjects, make_user, make_group):
        make_user("alice")
        disabled = make_user("bob")
        make_group("readers")
        subjects.disable(disabled.storage_key)

        assert len(subjects.all_subjects(SubjectKind.USER)) == 1
        assert len(subjects.all_subjects(SubjectKind.USER, include_disabled=True)) == 2
        assert subjects.count() == {"user": 2, "group": 1, "total": 3}


class TestDisable:
    def test_disable_is_idempotent(self, subjects, make_user):
        user = make_user("alice")
        first = subjects.disable(user.storage_key)
        second = subjects.disable(user.storage_key)

        assert first.disabled and second.disabled
        assert subjects.get(user.storage_key).disabled

    def test_disable_missing(self, subjects):
        with pytest.raises(NotFoundError):
            subjects.disable("0f8fad5b-d9cb-469f-a165-70867728950e")

    def test_disabled_flag_only_serialized_when_set(self, subjects, make_user):
        user = make_user("alice")
        assert "disabled" not in user.to_dict()
        assert subjects.disable(user.storage_key).to_dict()["disabled"] is True

    def test_to_dict_hides_storage_key(self, make_user):
        data = make_user("alice").to_dict()
        assert "storage_key" not in data
        assert data["subject_kind"] == "user"


class TestPatch:
    def test_patch_display_name(self, subjects, make_group):
        group = make_group("readers")
        updated = subjects.patch(group.storage_key, {"display_name": "Readers", "description": "Read access"})

        assert updated.display_name == "Readers"
        assert updated.description == "Read access"
        assert updated.descriptor == group.descriptor

    def test_empty_patch(self, subjects, make_group):
        group = make_group("readers")
        assert subjects.patch(group.storage_key, {}) == group

    @pytest.mark.parametrize("field", ["origin", "origin_id", "descriptor", "storage_key", "created_at"])
    def test_immutable_fields(self, subjects, make_group, field):
        group = make_group("readers")
        with pytest.raises(InvalidArgumentError, match="cannot be changed"):
            subjects.patch(group.storage_key, {field: "x"})

    def test_unknown_field(self, subjects, make_group):
        group = make_group("readers")
        with pytest.raises(InvalidArgumentError, match="not patchable"):
            subjects.patch(group.storage_key, {"color": "blue"})

    def test_scope_administrator_is_patchable(self, subjects):
        scope = subjects.create(SubjectKind.SCOPE, CreationContext(display_name="Web"))
        updated = subjects.patch(scope.storage_key, {"administrator_descriptor": scope.descriptor})
        assert updated.administrator_descriptor == scope.descriptor

    def test_failed_patch_changes_nothing(self, subjects, make_group):
        group = make_group("readers")
        with pytest.raises(InvalidArgumentError):
            subjects.patch(group.storage_key, {"display_name": "New", "origin": "aad"})
        assert subjects.get(group.storage_key).display_name == "readers"

    def test_rename_frees_old_name(self, subjects, make_group):
        group = make_group("Alpha")
        subjects.patch(group.storage_key, {"display_name": "Beta"})

        alpha = make_group("Alpha")
        assert alpha.storage_key != group.storage_key

    def test_rename_claims_new_name(self, subjects, make_group):
        group = make_group("Alpha")
        subjects.patch(group.storage_key, {"display_name": "Beta"})

        with pytest.raises(ConflictError) as exc_info:
            make_group("Beta")
        assert exc_info.value.existing_descriptor == group.descriptor

    def test_rename_onto_existing_name(self, subjects, make_group):
        alpha, beta = make_group("Alpha"), make_group("Beta")

        with pytest.raises(ConflictError) as exc_info:
            subjects.patch(alpha.storage_key, {"display_name": "beta"})

        assert exc_info.value.existing_descriptor == beta.descriptor
        assert subjects.get(alpha.storage_key).display_name == "Alpha"

    def test_rename_is_scoped(self, subjects, make_group):
        scope = subjects.create(SubjectKind.SCOPE, CreationContext(display_name="Web"))
        make_group("Beta")
        group = make_group("Alpha", scope.descriptor)

        assert subjects.patch(group.storage_key, {"display_name": "Beta"}).display_name == "Beta"

    def test_rename_with_mail_address_keeps_identity(self, subjects):
        group = subjects.create(SubjectKind.GROUP, CreationContext(display_name="Ops", mail_address="ops@fabrikam.com"))

        subjects.patch(group.storage_key, {"display_name": "Operations"})

        with pytest.raises(ConflictError):
            subjects.create(SubjectKind.GROUP, CreationContext(display_name="Other", mail_address="ops@fabrikam.com"))
