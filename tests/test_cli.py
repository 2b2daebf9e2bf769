"""
CLI commands run against a temporary cache database.

The durable cache is reopened after each command to check what the CLI
left behind, since rich may wrap long lines in captured output.
"""
import json

import pytest

from orgdesign.cli.main import app
from orgdesign.persistence.cache import KeyValueCache
from orgdesign.persistence.service import PersistenceService
from orgdesign.policy.defaults import DEFAULT_SCP_ID

DENY_LEAVE = '{"Version": "2012-10-17", "Statement": [{"Effect": "Deny", "Action": "organizations:LeaveOrganization", "Resource": "*"}]}'


def load_snapshot(cache_db):
    cache = KeyValueCache(cache_db)
    try:
        return PersistenceService(cache).load_from_local_cache()
    finally:
        cache.close()


def node_named(snapshot, name):
    return next(n for n in snapshot.organization.nodes.values() if n.name == name)


@pytest.fixture
def invoke(cli_runner, cache_db):
    def _invoke(*args, input=None):
        return cli_runner.invoke(app, ["--quiet", "--db", cache_db, *args], input=input)
    return _invoke


@pytest.fixture
def acme(invoke):
    assert invoke("org", "create", "Acme").exit_code == 0
    assert invoke("node", "add", "Workloads").exit_code == 0
    assert invoke("node", "add", "Prod", "--parent", "Workloads").exit_code == 0
    assert invoke("node", "add", "Payments", "--parent", "Prod", "--kind", "account").exit_code == 0


def test_commands_need_an_organization(invoke):
    result = invoke("node", "add", "Orphan")
    assert result.exit_code == 1
    assert "No organization exists" in result.output


def test_create_refuses_to_replace_without_force(invoke, cache_db, acme):
    result = invoke("org", "create", "Other")
    assert result.exit_code == 1
    assert load_snapshot(cache_db).organization.name == "Acme"

    assert invoke("org", "create", "Other", "--force").exit_code == 0
    snapshot = load_snapshot(cache_db)
    assert snapshot.organization.name == "Other"
    assert len(snapshot.organization.nodes) == 1


def test_build_tree(cache_db, acme):
    snapshot = load_snapshot(cache_db)
    prod = node_named(snapshot, "Prod")
    payments = node_named(snapshot, "Payments")
    assert payments.parent_id == prod.id
    assert prod.parent_id == node_named(snapshot, "Workloads").id


def test_show_json(invoke, acme):
    result = invoke("org", "show", "--json")
    assert result.exit_code == 0
    assert json.loads(result.output)["name"] == "Acme"


def test_move_rename_delete(invoke, cache_db, acme):
    assert invoke("node", "move", "Payments", "root").exit_code == 0
    assert invoke("node", "rename", "Payments", "Billing").exit_code == 0
    assert invoke("node", "delete", "Workloads").exit_code == 0

    snapshot = load_snapshot(cache_db)
    names = sorted(n.name for n in snapshot.organization.nodes.values())
    assert names == ["Acme", "Billing"]


def test_move_into_own_subtree_fails(invoke, cache_db, acme):
    result = invoke("node", "move", "Workloads", "Prod")
    assert result.exit_code == 1
    assert "CYCLE_DETECTED" in result.output
    assert node_named(load_snapshot(cache_db), "Workloads").parent_id == load_snapshot(cache_db).organization.root_id


def test_deleting_root_fails(invoke, acme):
    result = invoke("node", "delete", "root")
    assert result.exit_code == 1
    assert "ROOT_PROTECTION" in result.output


def test_unknown_node_reference(invoke, acme):
    result = invoke("node", "rename", "Nowhere", "Somewhere")
    assert result.exit_code == 1
    assert "not found" in result.output


class TestPolicyCommands:

    def test_create_attach_and_inherit(self, invoke, cache_db, acme):
        assert invoke("policy", "create", "DenyLeave", "--kind", "scp", "--content", DENY_LEAVE).exit_code == 0
        assert invoke("policy", "attach", "DenyLeave", "Workloads").exit_code == 0

        result = invoke("policy", "inherited", "Payments", "--kind", "scp")
        assert result.exit_code == 0
        assert "DenyLeave" in result.output
        assert "FullAWSAccess" in result.output

        snapshot = load_snapshot(cache_db)
        policy = next(p for p in snapshot.policies.values() if p.name == "DenyLeave")
        workloads = node_named(snapshot, "Workloads")
        assert any(a.policy_id == policy.id and a.node_id == workloads.id for a in snapshot.attachments)

    def test_create_with_default_content(self, invoke, cache_db, acme):
        assert invoke("policy", "create", "Baseline", "--kind", "rcp").exit_code == 0
        policy = next(p for p in load_snapshot(cache_db).policies.values() if p.name == "Baseline")
        assert json.loads(policy.content)["Statement"]

    def test_create_from_file(self, invoke, cache_db, acme, tmp_path):
        document = tmp_path / "deny.json"
        document.write_text(DENY_LEAVE, encoding="utf-8")
        assert invoke("policy", "create", "FromFile", "--kind", "scp", "--file", str(document)).exit_code == 0
        assert any(p.name == "FromFile" for p in load_snapshot(cache_db).policies.values())

    @pytest.mark.parametrize("args,kind", [
        (("FullAWSAccess", "--kind", "scp"), "DUPLICATE_POLICY_NAME"),
        (("Broken", "--kind", "scp", "--content", "{not json"), "INVALID_POLICY_JSON"),
        (("  ", "--kind", "scp"), "EMPTY_POLICY_NAME"),
    ])
    def test_create_rejects_invalid_policies(self, invoke, cache_db, acme, args, kind):
        before = len(load_snapshot(cache_db).policies)
        result = invoke("policy", "create", *args)
        assert result.exit_code == 1
        assert kind in result.output
        assert len(load_snapshot(cache_db).policies) == before

    def test_default_policy_cannot_be_detached_or_deleted(self, invoke, cache_db, acme):
        result = invoke("policy", "detach", "FullAWSAccess", "root")
        assert result.exit_code == 1
        assert "DEFAULT_POLICY_PROTECTION" in result.output

        assert invoke("policy", "delete", DEFAULT_SCP_ID).exit_code == 1
        assert DEFAULT_SCP_ID in load_snapshot(cache_db).policies

    def test_delete_cascades_attachments(self, invoke, cache_db, acme):
        invoke("policy", "create", "DenyLeave", "--kind", "scp", "--content", DENY_LEAVE)
        invoke("policy", "attach", "DenyLeave", "Prod")
        assert invoke("policy", "delete", "DenyLeave").exit_code == 0

        snapshot = load_snapshot(cache_db)
        assert all(p.name != "DenyLeave" for p in snapshot.policies.values())
        assert {a.policy_id for a in snapshot.attachments} <= set(snapshot.policies)

    def test_list_json(self, invoke, acme):
        result = invoke("policy", "list", "--json")
        assert result.exit_code == 0
        data = {p["name"]: p for p in json.loads(result.output)}
        assert data["FullAWSAccess"]["default"] is True
        assert data["FullAWSAccess"]["attachments"] == 1


def test_validate(invoke, acme):
    result = invoke("org", "validate", "--json")
    assert result.exit_code == 0
    assert json.loads(result.output)["is_valid"] is True


class TestSnapshotCommands:

    def test_export_then_import(self, invoke, cache_db, acme, tmp_path):
        result = invoke("snapshot", "export", "--dir", str(tmp_path))
        assert result.exit_code == 0
        exported = tmp_path / "acme-1.1.json"
        assert exported.exists()
        assert load_snapshot(cache_db).metadata.structural_version == "1.1"

        assert invoke("org", "clear", "--yes").exit_code == 0
        assert load_snapshot(cache_db) is None

        result = invoke("snapshot", "import", str(exported))
        assert result.exit_code == 0
        snapshot = load_snapshot(cache_db)
        assert node_named(snapshot, "Payments").kind.value == "account"
        assert snapshot.metadata.structural_version == "1.1"

    def test_second_export_bumps_version(self, invoke, acme, tmp_path):
        invoke("snapshot", "export", "--dir", str(tmp_path))
        invoke("snapshot", "export", "--dir", str(tmp_path))
        assert (tmp_path / "acme-1.2.json").exists()

    def test_import_invalid_file(self, invoke, cache_db, acme, tmp_path):
        broken = tmp_path / "broken.json"
        broken.write_text('{"format_version": "1.0.0"}', encoding="utf-8")
        result = invoke("snapshot", "import", str(broken))
        assert result.exit_code == 1
        assert load_snapshot(cache_db).organization.name == "Acme"

    def test_export_without_organization(self, invoke, tmp_path):
        out = tmp_path / "out"
        result = invoke("snapshot", "export", "--dir", str(out))
        assert result.exit_code == 1
        assert not out.exists()


def test_clear_asks_for_confirmation(invoke, cache_db, acme):
    result = invoke("org", "clear", input="n\n")
    assert result.exit_code == 1
    assert load_snapshot(cache_db).organization.name == "Acme"
