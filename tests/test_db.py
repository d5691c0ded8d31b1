"""Database layer tests.

All tests use an in-memory SQLite database so they are:
- Fast (no disk I/O)
- Isolated (each fixture gets a fresh DB)
- Side-effect free (nothing written to ~/.familytree_data)
"""

from __future__ import annotations

import sqlite3
import threading
from datetime import date
from functools import partial
from typing import Generator

import pytest

from familytree.db.connection import get_connection
from familytree.db.members import (
    SqliteMembershipDirectory,
    add_membership,
    add_user,
    get_user_by_external_id,
)
from familytree.db.migrations import MIGRATIONS, current_version, init_db
from familytree.db.models import Gender, MemberRole, MemberStatus, RelationType, TreeNode
from familytree.db.nodes import (
    delete_node,
    find_foreign_node_ids,
    get_node,
    insert_node,
    list_node_ids,
    list_tree_nodes,
    update_node,
)
from familytree.db.relations import (
    delete_relation,
    find_foreign_relation_ids,
    get_node_relations,
    insert_relation,
    list_tree_relations,
    update_relation,
)
from familytree.db.transactions import chunked, run_batches, transaction
from familytree.db.trees import (
    claim_version,
    create_tree,
    family_has_tree,
    get_tree,
    get_tree_graph,
    list_trees,
    list_trees_for_user,
)
from familytree.errors import StorageFailure, TransactionTimeout

from helpers import make_node, parent, spouse


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture()
def conn() -> Generator[sqlite3.Connection, None, None]:
    """In-memory connection with the schema initialised."""
    connection = get_connection(db_path=":memory:")  # type: ignore[arg-type]
    init_db(connection)
    yield connection
    connection.close()


@pytest.fixture()
def tree_id(conn: sqlite3.Connection) -> str:
    return create_tree(conn, family_id="fam-1", name="Doe Family", created_by_id="u-1").id


def _store_nodes(conn: sqlite3.Connection, *nodes: TreeNode) -> None:
    with transaction(conn):
        for node in nodes:
            insert_node(conn, node)


# ---------------------------------------------------------------------------
# connection / init
# ---------------------------------------------------------------------------

class TestConnection:
    def test_foreign_keys_enabled(self, conn: sqlite3.Connection) -> None:
        row = conn.execute("PRAGMA foreign_keys").fetchone()
        assert row[0] == 1

    def test_wal_mode(self, conn: sqlite3.Connection) -> None:
        row = conn.execute("PRAGMA journal_mode").fetchone()
        # In-memory DBs always return 'memory', on-disk returns 'wal'
        assert row[0] in ("wal", "memory")


class TestInitDb:
    def test_tables_exist(self, conn: sqlite3.Connection) -> None:
        tables = {
            r[0]
            for r in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'").fetchall()
        }
        assert {"users", "family_members", "trees", "tree_nodes", "tree_relations"} <= tables
        assert "schema_version" in tables

    def test_fresh_db_is_fully_migrated(self, conn: sqlite3.Connection) -> None:
        assert current_version(conn) == MIGRATIONS[-1][0]
        indexes = {
            r[0]
            for r in conn.execute("SELECT name FROM sqlite_master WHERE type = 'index'").fetchall()
        }
        assert "idx_trees_created_by" in indexes

    def test_init_db_is_idempotent(self, conn: sqlite3.Connection) -> None:
        init_db(conn)
        assert conn.execute("SELECT COUNT(*) FROM schema_version").fetchone()[0] == len(MIGRATIONS)


# ---------------------------------------------------------------------------
# Trees
# ---------------------------------------------------------------------------

class TestTrees:
    def test_create_and_get(self, conn: sqlite3.Connection) -> None:
        tree = create_tree(conn, family_id="fam-9", name="Roots", created_by_id="u-9", description="x")
        fetched = get_tree(conn, tree.id)
        assert fetched == tree
        assert fetched.version == 0
        assert len(tree.id) == 36

    def test_get_missing_returns_none(self, conn: sqlite3.Connection) -> None:
        assert get_tree(conn, "nope") is None
        assert get_tree_graph(conn, "nope") is None

    def test_family_has_tree(self, conn: sqlite3.Connection, tree_id: str) -> None:
        assert family_has_tree(conn, "fam-1")
        assert not family_has_tree(conn, "fam-2")

    def test_list_trees_filters_by_family(self, conn: sqlite3.Connection, tree_id: str) -> None:
        create_tree(conn, family_id="fam-2", name="Other", created_by_id="u-1")
        assert [t.id for t in list_trees(conn, family_id="fam-1")] == [tree_id]
        assert len(list_trees(conn)) == 2

    def test_claim_version_increments(self, conn: sqlite3.Connection, tree_id: str) -> None:
        with transaction(conn):
            assert claim_version(conn, tree_id) == 1
        with transaction(conn):
            assert claim_version(conn, tree_id, expected_version=1) == 2
        assert get_tree(conn, tree_id).version == 2

    def test_claim_version_rejects_stale(self, conn: sqlite3.Connection, tree_id: str) -> None:
        with transaction(conn):
            assert claim_version(conn, tree_id, expected_version=7) is None
        assert get_tree(conn, tree_id).version == 0


class TestTreeListingForUser:
    def test_member_sees_family_trees_with_counts(self, conn: sqlite3.Connection, tree_id: str) -> None:
        user = add_user(conn, external_id="ext-a")
        add_membership(conn, user.id, "fam-1", role=MemberRole.ADMIN)
        _store_nodes(conn, make_node("a", tree_id), make_node("b", tree_id))

        summaries = list_trees_for_user(conn, user.id)
        assert len(summaries) == 1
        assert summaries[0].tree.id == tree_id
        assert summaries[0].node_count == 2
        assert summaries[0].relation_count == 0
        assert summaries[0].caller_is_admin is True

    def test_pending_member_sees_nothing(self, conn: sqlite3.Connection, tree_id: str) -> None:
        user = add_user(conn, external_id="ext-b")
        add_membership(conn, user.id, "fam-1", status=MemberStatus.PENDING)
        assert list_trees_for_user(conn, user.id) == []

    def test_creator_sees_own_tree_without_membership(self, conn: sqlite3.Connection) -> None:
        user = add_user(conn, external_id="ext-c")
        tree = create_tree(conn, family_id="fam-x", name="Mine", created_by_id=user.id)
        summaries = list_trees_for_user(conn, user.id)
        assert [s.tree.id for s in summaries] == [tree.id]
        assert summaries[0].caller_is_admin is False


# ---------------------------------------------------------------------------
# Nodes
# ---------------------------------------------------------------------------

class TestNodes:
    def test_insert_and_get_roundtrip(self, conn: sqlite3.Connection, tree_id: str) -> None:
        node = make_node(
            "n1",
            tree_id,
            date_of_death=date(2001, 5, 4),
            is_alive=False,
            gender=Gender.FEMALE,
            custom_fields={"nickname": "Nana", "tags": ["a", "b"]},
            position_x=10.5,
            position_y=-3.0,
        )
        _store_nodes(conn, node)
        fetched = get_node(conn, tree_id, "n1")
        assert fetched is not None
        assert fetched.date_of_birth == date(1950, 1, 1)
        assert fetched.date_of_death == date(2001, 5, 4)
        assert fetched.is_alive is False
        assert fetched.gender is Gender.FEMALE
        assert fetched.custom_fields == {"nickname": "Nana", "tags": ["a", "b"]}
        assert fetched.position_x == 10.5
        assert fetched.created_at > 0

    def test_null_custom_fields_stay_null(self, conn: sqlite3.Connection, tree_id: str) -> None:
        _store_nodes(conn, make_node("n1", tree_id))
        assert get_node(conn, tree_id, "n1").custom_fields is None

    def test_get_node_scoped_to_tree(self, conn: sqlite3.Connection, tree_id: str) -> None:
        _store_nodes(conn, make_node("n1", tree_id))
        assert get_node(conn, "other-tree", "n1") is None

    def test_update_node(self, conn: sqlite3.Connection, tree_id: str) -> None:
        _store_nodes(conn, make_node("n1", tree_id))
        with transaction(conn):
            update_node(conn, make_node("n1", tree_id, first_name="Janet", biography="Bio"))
        fetched = get_node(conn, tree_id, "n1")
        assert fetched.first_name == "Janet"
        assert fetched.biography == "Bio"

    def test_update_missing_node_raises(self, conn: sqlite3.Connection, tree_id: str) -> None:
        with pytest.raises(ValueError, match="Node not found"):
            with transaction(conn):
                update_node(conn, make_node("ghost", tree_id))

    def test_list_in_insertion_order(self, conn: sqlite3.Connection, tree_id: str) -> None:
        _store_nodes(conn, make_node("b", tree_id), make_node("a", tree_id), make_node("c", tree_id))
        assert [n.id for n in list_tree_nodes(conn, tree_id)] == ["b", "a", "c"]
        assert list_node_ids(conn, tree_id) == ["b", "a", "c"]

    def test_delete_node_cascades_relations(self, conn: sqlite3.Connection, tree_id: str) -> None:
        _store_nodes(conn, make_node("a", tree_id), make_node("b", tree_id))
        with transaction(conn):
            insert_relation(conn, parent("r1", "a", "b", tree_id))
            delete_node(conn, tree_id, "a")
        assert get_node(conn, tree_id, "a") is None
        assert list_tree_relations(conn, tree_id) == []

    def test_find_foreign_node_ids(self, conn: sqlite3.Connection, tree_id: str) -> None:
        other = create_tree(conn, family_id="fam-2", name="Other", created_by_id="u-1").id
        _store_nodes(conn, make_node("mine", tree_id), make_node("theirs", other))
        assert find_foreign_node_ids(conn, tree_id, ["mine", "theirs", "new"]) == {"theirs"}


# ---------------------------------------------------------------------------
# Relations
# ---------------------------------------------------------------------------

class TestRelations:
    def test_insert_update_delete(self, conn: sqlite3.Connection, tree_id: str) -> None:
        _store_nodes(conn, make_node("a", tree_id), make_node("b", tree_id))
        with transaction(conn):
            insert_relation(conn, spouse("r1", "a", "b", tree_id=tree_id))
        [rel] = list_tree_relations(conn, tree_id)
        assert rel.relation_type is RelationType.SPOUSE
        assert rel.is_active is True

        updated = spouse("r1", "a", "b", active=False, tree_id=tree_id)
        updated.divorce_date = date(2010, 2, 3)
        with transaction(conn):
            update_relation(conn, updated)
        [rel] = list_tree_relations(conn, tree_id)
        assert rel.is_active is False
        assert rel.divorce_date == date(2010, 2, 3)

        with transaction(conn):
            delete_relation(conn, tree_id, "r1")
        assert list_tree_relations(conn, tree_id) == []

    def test_update_missing_relation_raises(self, conn: sqlite3.Connection, tree_id: str) -> None:
        with pytest.raises(ValueError, match="Relation not found"):
            with transaction(conn):
                update_relation(conn, parent("ghost", "a", "b", tree_id))

    def test_self_loop_rejected_by_schema(self, conn: sqlite3.Connection, tree_id: str) -> None:
        _store_nodes(conn, make_node("a", tree_id))
        with pytest.raises(StorageFailure):
            with transaction(conn):
                insert_relation(conn, parent("r1", "a", "a", tree_id))

    def test_unknown_endpoint_rejected_by_schema(self, conn: sqlite3.Connection, tree_id: str) -> None:
        _store_nodes(conn, make_node("a", tree_id))
        with pytest.raises(StorageFailure):
            with transaction(conn):
                insert_relation(conn, parent("r1", "a", "missing", tree_id))

    def test_get_node_relations_both_directions(self, conn: sqlite3.Connection, tree_id: str) -> None:
        _store_nodes(conn, *(make_node(x, tree_id) for x in "abc"))
        with transaction(conn):
            insert_relation(conn, parent("r1", "a", "b", tree_id))
            insert_relation(conn, parent("r2", "b", "c", tree_id))
        assert {r.id for r in get_node_relations(conn, tree_id, "b")} == {"r1", "r2"}
        assert [r.id for r in get_node_relations(conn, tree_id, "a")] == ["r1"]

    def test_find_foreign_relation_ids(self, conn: sqlite3.Connection, tree_id: str) -> None:
        other = create_tree(conn, family_id="fam-2", name="Other", created_by_id="u-1").id
        _store_nodes(conn, make_node("x", other), make_node("y", other))
        with transaction(conn):
            insert_relation(conn, parent("r-other", "x", "y", other))
        assert find_foreign_relation_ids(conn, tree_id, ["r-other", "r-new"]) == {"r-other"}


# ---------------------------------------------------------------------------
# Users / memberships
# ---------------------------------------------------------------------------

class TestMembers:
    def test_resolve_external_id(self, conn: sqlite3.Connection) -> None:
        user = add_user(conn, external_id="clerk_123", full_name="Jane Doe")
        assert get_user_by_external_id(conn, "clerk_123") == user
        assert get_user_by_external_id(conn, "unknown") is None

    def test_directory_reads_membership(self, conn: sqlite3.Connection) -> None:
        user = add_user(conn, external_id="e1")
        add_membership(conn, user.id, "fam-1", role=MemberRole.ADMIN)
        membership = SqliteMembershipDirectory(conn).get_membership(user.id, "fam-1")
        assert membership is not None
        assert membership.is_admin
        assert SqliteMembershipDirectory(conn).get_membership(user.id, "fam-2") is None

    def test_add_membership_replaces_role(self, conn: sqlite3.Connection) -> None:
        user = add_user(conn, external_id="e2")
        add_membership(conn, user.id, "fam-1", role=MemberRole.ADMIN)
        add_membership(conn, user.id, "fam-1", role=MemberRole.MEMBER)
        membership = SqliteMembershipDirectory(conn).get_membership(user.id, "fam-1")
        assert membership.role is MemberRole.MEMBER
        assert not membership.is_admin


# ---------------------------------------------------------------------------
# Transactions and batches
# ---------------------------------------------------------------------------

class TestTransaction:
    def test_commits_on_success(self, conn: sqlite3.Connection, tree_id: str) -> None:
        with transaction(conn, timeout=5.0):
            insert_node(conn, make_node("a", tree_id))
        assert get_node(conn, tree_id, "a") is not None
        assert not conn.in_transaction

    def test_rolls_back_on_error(self, conn: sqlite3.Connection, tree_id: str) -> None:
        with pytest.raises(RuntimeError):
            with transaction(conn):
                insert_node(conn, make_node("a", tree_id))
                raise RuntimeError("boom")
        assert get_node(conn, tree_id, "a") is None

    def test_driver_errors_become_storage_failure(self, conn: sqlite3.Connection) -> None:
        with pytest.raises(StorageFailure) as excinfo:
            with transaction(conn):
                conn.execute("INSERT INTO no_such_table VALUES (1)")
        assert isinstance(excinfo.value.__cause__, sqlite3.Error)

    def test_timeout_rolls_back(self, conn: sqlite3.Connection, tree_id: str) -> None:
        with pytest.raises(TransactionTimeout):
            with transaction(conn, timeout=0):
                insert_node(conn, make_node("a", tree_id))
        assert get_node(conn, tree_id, "a") is None
        # The progress handler is removed again afterwards.
        with transaction(conn, timeout=5.0):
            insert_node(conn, make_node("b", tree_id))
        assert get_node(conn, tree_id, "b") is not None

    def test_waiting_for_another_writer_counts_against_timeout(
        self, conn: sqlite3.Connection, tree_id: str
    ) -> None:
        holding = threading.Event()
        release = threading.Event()

        def hold_write_lock() -> None:
            with transaction(conn):
                holding.set()
                release.wait(5)

        writer = threading.Thread(target=hold_write_lock)
        writer.start()
        try:
            assert holding.wait(5)
            with pytest.raises(TransactionTimeout):
                with transaction(conn, timeout=0.05):
                    insert_node(conn, make_node("late", tree_id))
        finally:
            release.set()
            writer.join()

        assert get_node(conn, tree_id, "late") is None
        assert not conn.in_transaction


class TestRunBatches:
    def test_chunked(self) -> None:
        assert chunked([1, 2, 3, 4, 5, 6, 7], 5) == [[1, 2, 3, 4, 5], [6, 7]]
        assert chunked([], 5) == []
        with pytest.raises(ValueError):
            chunked([1], 0)

    def test_applies_all_operations(self, conn: sqlite3.Connection, tree_id: str) -> None:
        ops = [partial(insert_node, node=make_node(f"n{i}", tree_id)) for i in range(12)]
        batches = run_batches(conn, ops, batch_size=5, timeout=5.0, label="test")
        assert batches == 3
        assert len(list_tree_nodes(conn, tree_id)) == 12

    def test_no_operations(self, conn: sqlite3.Connection) -> None:
        assert run_batches(conn, [], batch_size=5, timeout=5.0, label="test") == 0

    def test_failed_batch_keeps_earlier_batches(self, conn: sqlite3.Connection, tree_id: str) -> None:
        ops = [partial(insert_node, node=make_node(f"n{i}", tree_id)) for i in range(6)]
        # Duplicate primary key in the second batch.
        ops.append(partial(insert_node, node=make_node("n0", tree_id)))

        with pytest.raises(StorageFailure):
            run_batches(conn, ops, batch_size=5, timeout=5.0, label="test")

        assert sorted(list_node_ids(conn, tree_id)) == ["n0", "n1", "n2", "n3", "n4"]

    def test_update_of_missing_row_fails_its_batch(self, conn: sqlite3.Connection, tree_id: str) -> None:
        _store_nodes(conn, make_node("a", tree_id))
        ops = [partial(update_node, node=make_node(f"ghost{i}", tree_id)) for i in range(4)]
        ops.append(partial(update_node, node=make_node("a", tree_id, first_name="Renamed")))

        with pytest.raises(ValueError, match="Node not found"):
            run_batches(conn, ops, batch_size=5, timeout=5.0, label="test")

        # The whole batch rolled back, including the update that matched.
        assert get_node(conn, tree_id, "a").first_name == "A"
