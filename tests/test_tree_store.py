"""
Tests for the organization tree store: creation, structural mutation,
nesting limits and read-only queries.
"""
import pytest

from orgdesign.organization.models import NodeKind, Position
from orgdesign.policy.defaults import DEFAULT_RCP_ID, DEFAULT_SCP_ID
from orgdesign.validation.models import ErrorCategory, ValidationErrorKind


class TestCreateOrganization:

    def test_root_and_default_policies(self, tree_store, state_store):
        result = tree_store.create_organization("Acme")
        assert result.is_valid

        state = state_store.get_state()
        organization = state.organization
        root = organization.root
        assert organization.name == "Acme"
        assert root.kind == NodeKind.ROOT
        assert root.parent_id is None
        assert root.position == Position(x=0, y=0)
        assert set(state.policies) == {DEFAULT_SCP_ID, DEFAULT_RCP_ID}
        assert {(a.policy_id, a.node_id) for a in state.attachments} == {
            (DEFAULT_SCP_ID, root.id),
            (DEFAULT_RCP_ID, root.id),
        }
        assert state.selected_node_id == root.id

    def test_recreate_replaces_previous_organization(self, tree_store, root_id, add_node):
        add_node(root_id, NodeKind.ACCOUNT, "Old")
        tree_store.create_organization("Fresh")
        assert tree_store.organization.name == "Fresh"
        assert len(tree_store.organization.nodes) == 1


class TestAddNode:

    def test_children_are_linked_both_ways(self, tree_store, root_id, add_node):
        unit_id = add_node(root_id, NodeKind.UNIT, "Engineering")
        account_id = add_node(unit_id, NodeKind.ACCOUNT, "Prod")

        unit = tree_store.get_node(unit_id)
        account = tree_store.get_node(account_id)
        assert unit.parent_id == root_id
        assert tree_store.get_node(root_id).child_ids == [unit_id]
        assert unit.child_ids == [account_id]
        assert account.parent_id == unit_id
        assert account.kind == NodeKind.ACCOUNT

    def test_new_node_position(self, tree_store, root_id, add_node):
        first = add_node(root_id, NodeKind.UNIT, "Engineering")
        second = add_node(root_id, NodeKind.UNIT, "Finance")

        assert tree_store.get_node(first).position == Position(x=0, y=160)
        # 230/2 (Engineering) + 60 gap + 190/2 (Finance)
        assert tree_store.get_node(second).position == Position(x=270, y=160)

    def test_name_is_preserved(self, tree_store, root_id, add_node):
        node_id = add_node(root_id, NodeKind.ACCOUNT, "  Sandbox ")
        assert tree_store.get_node(node_id).name == "  Sandbox "

    def test_unknown_parent_is_rejected(self, tree_store, root_id, state_store):
        before = state_store.get_state()
        result = tree_store.add_node("missing", NodeKind.UNIT, "Ghost")
        assert not result.is_valid
        assert result.has_kind(ValidationErrorKind.NODE_NOT_FOUND)
        assert state_store.get_state() is before

    def test_without_organization(self, tree_store):
        result = tree_store.add_node("anything", NodeKind.UNIT, "Ghost")
        assert result.has_kind(ValidationErrorKind.ORGANIZATION_MISSING)

    def test_second_root_is_rejected(self, tree_store, root_id):
        result = tree_store.add_node(root_id, NodeKind.ROOT, "Another root")
        assert result.has_kind(ValidationErrorKind.ROOT_PROTECTION)
        assert len(tree_store.organization.nodes) == 1


class TestNestingLimit:

    def test_sixth_unit_level_is_rejected(self, tree_store, state_store, root_id, unit_chain):
        chain = unit_chain(root_id, 5)
        assert tree_store.get_nesting_level(chain[-1]) == 5

        before = state_store.get_state()
        result = tree_store.add_node(chain[-1], NodeKind.UNIT, "Too deep")
        assert not result.is_valid
        error = result.errors[0]
        assert error.kind == ValidationErrorKind.NESTING_LIMIT_EXCEEDED
        assert error.category == ErrorCategory.STRUCTURAL_LIMIT
        assert error.max_allowed == 5
        assert state_store.get_state() is before

    def test_accounts_are_allowed_at_the_deepest_level(self, tree_store, root_id, unit_chain, add_node):
        chain = unit_chain(root_id, 5)
        account_id = add_node(chain[-1], NodeKind.ACCOUNT, "Leaf")
        assert tree_store.get_nesting_level(account_id) == 6


class TestDeleteNode:

    def test_root_cannot_be_deleted(self, tree_store, state_store, root_id):
        before = state_store.get_state()
        result = tree_store.delete_node(root_id)
        assert result.has_kind(ValidationErrorKind.ROOT_PROTECTION)
        assert state_store.get_state() is before

    def test_subtree_is_removed(self, tree_store, root_id, add_node):
        keep = add_node(root_id, NodeKind.UNIT, "Keep")
        doomed = add_node(root_id, NodeKind.UNIT, "Doomed")
        child = add_node(doomed, NodeKind.UNIT, "Child")
        grandchild = add_node(child, NodeKind.ACCOUNT, "Grandchild")

        assert tree_store.delete_node(doomed).is_valid

        nodes = tree_store.organization.nodes
        assert set(nodes) == {root_id, keep}
        assert tree_store.get_node(root_id).child_ids == [keep]
        assert grandchild not in nodes

    def test_selection_is_cleared_when_deleted(self, tree_store, state_store, root_id, add_node):
        unit = add_node(root_id, NodeKind.UNIT, "Unit")
        child = add_node(unit, NodeKind.ACCOUNT, "Child")
        tree_store.select_node(child)

        tree_store.delete_node(unit)
        assert state_store.get_state().selected_node_id is None

    def test_selection_survives_unrelated_delete(self, tree_store, state_store, root_id, add_node):
        unit = add_node(root_id, NodeKind.UNIT, "Unit")
        other = add_node(root_id, NodeKind.UNIT, "Other")
        tree_store.select_node(other)

        tree_store.delete_node(unit)
        assert state_store.get_state().selected_node_id == other

    def test_attachments_of_removed_nodes_are_dropped(self, tree_store, policy_store, state_store, root_id, add_node):
        unit = add_node(root_id, NodeKind.UNIT, "Unit")
        account = add_node(unit, NodeKind.ACCOUNT, "Account")
        policy_id = policy_store.create_policy("DenyAll", "scp", '{"Statement": []}')
        assert policy_store.attach_policy(account, policy_id).is_valid

        tree_store.delete_node(unit)

        attachments = state_store.get_state().attachments
        assert all(a.node_id == root_id for a in attachments)
        assert len(attachments) == 2
        assert policy_store.get_policy(policy_id) is not None


class TestMoveNode:

    def test_move_relinks_parents(self, tree_store, root_id, add_node):
        a = add_node(root_id, NodeKind.UNIT, "A")
        b = add_node(root_id, NodeKind.UNIT, "B")
        account = add_node(a, NodeKind.ACCOUNT, "Acc")

        assert tree_store.move_node(account, b).is_valid
        assert tree_store.get_node(a).child_ids == []
        assert tree_store.get_node(b).child_ids == [account]
        assert tree_store.get_node(account).parent_id == b

    def test_root_cannot_be_moved(self, tree_store, root_id, add_node):
        unit = add_node(root_id, NodeKind.UNIT, "Unit")
        assert tree_store.move_node(root_id, unit).has_kind(ValidationErrorKind.ROOT_PROTECTION)

    @pytest.mark.parametrize("target", ["self", "child", "grandchild"])
    def test_cycles_are_rejected(self, tree_store, state_store, root_id, add_node, target):
        a = add_node(root_id, NodeKind.UNIT, "A")
        child = add_node(a, NodeKind.UNIT, "Child")
        grandchild = add_node(child, NodeKind.UNIT, "Grandchild")
        new_parent = {"self": a, "child": child, "grandchild": grandchild}[target]

        before = state_store.get_state()
        result = tree_store.move_node(a, new_parent)
        assert result.has_kind(ValidationErrorKind.CYCLE_DETECTED)
        assert state_store.get_state() is before

    def test_move_to_current_parent_is_noop(self, tree_store, state_store, root_id, add_node):
        unit = add_node(root_id, NodeKind.UNIT, "Unit")
        before = state_store.get_state()
        assert tree_store.move_node(unit, root_id).is_valid
        assert state_store.get_state() is before

    def test_unit_cannot_move_below_nesting_limit(self, tree_store, root_id, unit_chain):
        deep = unit_chain(root_id, 5, prefix="A")
        other = unit_chain(root_id, 1, prefix="B")

        result = tree_store.move_node(other[0], deep[-1])
        assert result.has_kind(ValidationErrorKind.NESTING_LIMIT_EXCEEDED)

    def test_moved_subtree_depth_is_checked(self, tree_store, root_id, unit_chain):
        target = unit_chain(root_id, 3, prefix="A")
        shallow = unit_chain(root_id, 2, prefix="B")
        deep = unit_chain(root_id, 3, prefix="C")

        assert tree_store.move_node(shallow[0], target[-1]).is_valid
        assert tree_store.get_nesting_level(shallow[-1]) == 5

        result = tree_store.move_node(deep[0], target[-1])
        assert result.has_kind(ValidationErrorKind.NESTING_LIMIT_EXCEEDED)
        assert tree_store.get_node(deep[0]).parent_id == root_id

    def test_account_can_move_to_deepest_unit(self, tree_store, root_id, unit_chain, add_node):
        deep = unit_chain(root_id, 5)
        account = add_node(root_id, NodeKind.ACCOUNT, "Acc")
        assert tree_store.move_node(account, deep[-1]).is_valid


class TestUpdates:

    def test_rename_trims(self, tree_store, root_id, add_node):
        unit = add_node(root_id, NodeKind.UNIT, "Unit")
        assert tree_store.rename_node(unit, "  Platform  ").is_valid
        assert tree_store.get_node(unit).name == "Platform"

    @pytest.mark.parametrize("name", ["", "   "])
    def test_rename_rejects_blank(self, tree_store, state_store, root_id, add_node, name):
        unit = add_node(root_id, NodeKind.UNIT, "Unit")
        before = state_store.get_state()
        result = tree_store.rename_node(unit, name)
        assert result.has_kind(ValidationErrorKind.INVALID_NODE_NAME)
        assert state_store.get_state() is before

    def test_update_node_checks_name(self, tree_store, state_store, root_id, add_node):
        unit = add_node(root_id, NodeKind.UNIT, "Unit")
        before = state_store.get_state()
        assert tree_store.update_node(unit, name="  ").has_kind(ValidationErrorKind.INVALID_NODE_NAME)
        assert state_store.get_state() is before

        assert tree_store.update_node(unit, name=" Shared ").is_valid
        assert tree_store.get_node(unit).name == "Shared"

    def test_update_position(self, tree_store, root_id):
        assert tree_store.update_node_position(root_id, 12.5, -40).is_valid
        assert tree_store.get_node(root_id).position == Position(x=12.5, y=-40)

    def test_update_unknown_node(self, tree_store, root_id):
        assert tree_store.update_node_position("missing", 1, 1).has_kind(ValidationErrorKind.NODE_NOT_FOUND)


class TestQueries:

    def test_path_and_levels(self, tree_store, root_id, add_node):
        unit = add_node(root_id, NodeKind.UNIT, "Unit")
        account = add_node(unit, NodeKind.ACCOUNT, "Account")

        assert [n.id for n in tree_store.get_path(account)] == [root_id, unit, account]
        assert tree_store.get_nesting_level(root_id) == 0
        assert tree_store.get_nesting_level(account) == 2
        assert tree_store.get_path("missing") == []
        assert tree_store.get_nesting_level("missing") == 0

    def test_counts_and_descendants(self, tree_store, root_id, add_node):
        unit = add_node(root_id, NodeKind.UNIT, "Unit")
        a1 = add_node(unit, NodeKind.ACCOUNT, "A1")
        a2 = add_node(root_id, NodeKind.ACCOUNT, "A2")

        assert tree_store.get_account_count() == 2
        assert tree_store.get_unit_count() == 1
        assert tree_store.get_descendant_ids(root_id) == [unit, a1, a2]
        assert tree_store.is_descendant(root_id, a1)
        assert not tree_store.is_descendant(unit, a2)

    def test_find_by_name_is_case_insensitive(self, tree_store, root_id, add_node):
        unit = add_node(root_id, NodeKind.UNIT, "Security")
        assert [n.id for n in tree_store.find_nodes_by_name("security")] == [unit]

    def test_layout_view(self, tree_store, root_id, add_node):
        unit = add_node(root_id, NodeKind.UNIT, "Unit")
        view = tree_store.layout_view()

        assert {n.id: n.parent_id for n in view.nodes} == {root_id: None, unit: root_id}
        assert [(e.source, e.target) for e in view.edges] == [(root_id, unit)]

    def test_position_conflicts(self, tree_store, root_id, add_node):
        a = add_node(root_id, NodeKind.UNIT, "A")
        b = add_node(root_id, NodeKind.UNIT, "B")
        assert tree_store.find_position_conflicts() == []

        tree_store.update_node_position(b, 10, 160)
        conflicts = tree_store.find_position_conflicts()
        assert {frozenset((c.first_id, c.second_id)) for c in conflicts} == {frozenset((a, b))}
