"""Transaction scope - one transaction per subtree, shared by every descendant.

Tests cover:
    - run_in_scope decision table (flag x already_transacting)
    - Propagation through chains, folds and flattened continuation results
    - Commit on success, rollback on failure
    - Failures of the transaction itself translated at whichever node opened it
"""

import pytest

from deferq.core.container import ExecutionContainer
from deferq.core.deferred import DeferredOperation, fold_all, run_in_scope
from tests.core.fake_database import (
    FakeDatabase, Problem, RawStorageError, failing, leaf, make_container,
)


async def test_run_in_scope_without_flag_uses_container_as_is(container, fake_db):
    seen = []
    assert await run_in_scope(container, False, lambda c: seen.append(c) or "done") == "done"
    assert seen == [container]
    assert fake_db.transactions_opened == 0


async def test_run_in_scope_reuses_open_transaction(fake_db):
    open_trx = ExecutionContainer(db=fake_db, already_transacting=True)
    seen = []
    await run_in_scope(open_trx, True, lambda c: seen.append(c))
    assert seen == [open_trx]
    assert fake_db.transactions_opened == 0


async def test_run_in_scope_opens_transaction_and_derives_container(container, fake_db):
    seen = []
    await run_in_scope(container, True, lambda c: seen.append(c))
    assert fake_db.transactions_opened == 1
    assert seen[0] is not container
    assert seen[0].already_transacting is True
    assert seen[0].translate_error is container.translate_error


async def test_run_in_scope_flattens_deferred_work_result_inside_transaction(container, fake_db):
    seen = []
    await run_in_scope(container, True, lambda c: leaf(1, seen))
    assert seen[0].already_transacting is True
    assert fake_db.transactions_opened == 1


async def test_transacting_chain_with_transacting_continuation_opens_one_transaction(
    container, fake_db,
):
    seen_a, seen_b = [], []
    a = leaf("a", seen_a).mark_transacting()
    chained = a.chain(lambda _: leaf("b", seen_b).mark_transacting())

    assert await chained.execute(container) == "b"
    assert fake_db.transactions_opened == 1
    assert seen_a[0].db is seen_b[0].db
    assert seen_b[0].already_transacting is True


async def test_marking_the_chain_covers_untransacted_parent(container, fake_db):
    seen = []
    chained = leaf(1, seen).chain(lambda x: leaf(x + 1, seen)).mark_transacting()
    assert await chained.execute(container) == 2
    assert fake_db.transactions_opened == 1
    assert all(c.already_transacting for c in seen)
    assert seen[0].db is seen[1].db


async def test_transacting_fold_shares_one_transaction_across_siblings(container, fake_db):
    seen = []
    folded = fold_all(
        [leaf(1, seen), leaf(2, seen).mark_transacting(), leaf(3, seen).chain(lambda x: x)],
        sum,
        transacting=True,
    )
    assert await folded.execute(container) == 6
    assert fake_db.transactions_opened == 1
    assert {c.db.name for c in seen} == {"trx1"}


async def test_untransacted_fold_lets_siblings_open_their_own(container, fake_db):
    folded = fold_all([leaf(1).mark_transacting(), leaf(2).mark_transacting()])
    await folded.execute(container)
    assert fake_db.transactions_opened == 2


async def test_transaction_commits_on_success(container, fake_db):
    await leaf(1).chain(lambda x: x).mark_transacting().execute(container)
    assert fake_db.events == ["begin:trx1", "commit:trx1"]


async def test_failure_anywhere_in_subtree_rolls_back(container, fake_db):
    chained = leaf(1).mark_transacting().chain(lambda _: failing(ValueError("late")))
    with pytest.raises(ValueError):
        await chained.execute(container)
    assert fake_db.events == ["begin:trx1", "rollback:trx1"]


async def test_recovered_failure_still_commits(container, fake_db):
    chained = failing(ValueError("x")).mark_transacting().recover(lambda e: "fine")
    assert await chained.execute(container) == "fine"
    assert fake_db.committed == 1
    assert fake_db.rolled_back == 0


async def test_queries_run_against_transaction_handle(container, fake_db):
    query = DeferredOperation(lambda c: c.db.scalar("UPDATE x")).mark_transacting()
    await query.execute(container)
    assert fake_db.events == ["begin:trx1", "trx1:UPDATE x", "commit:trx1"]


def test_with_transaction_derives_without_mutating():
    db = FakeDatabase()
    original = ExecutionContainer(db=db, flags={"audit": True})
    derived = original.with_transaction("trx")
    assert derived.db == "trx"
    assert derived.already_transacting is True
    assert derived.flags == {"audit": True}
    assert original.db is db
    assert original.already_transacting is False


async def test_chain_that_opens_transaction_translates_begin_failure():
    raw = RawStorageError("connection refused")
    container = make_container(FakeDatabase(begin_error=raw))
    chained = leaf(1).chain(lambda x: x + 1).mark_transacting()
    with pytest.raises(Problem) as exc_info:
        await chained.execute(container)
    assert exc_info.value.raw is raw
    assert exc_info.value.__cause__ is raw


async def test_fold_that_opens_transaction_translates_begin_failure():
    container = make_container(FakeDatabase(begin_error=RawStorageError("refused")))
    folded = fold_all([leaf(1), leaf(2)], sum, transacting=True)
    with pytest.raises(Problem):
        await folded.execute(container)


async def test_commit_failure_is_translated():
    db = FakeDatabase(commit_error=RawStorageError("commit lost"))
    chained = leaf(1).chain(lambda x: x).mark_transacting()
    with pytest.raises(Problem):
        await chained.execute(make_container(db))
    assert db.events == ["begin:trx1", "commit-failed:trx1"]


async def test_continuation_error_inside_opened_transaction_is_not_translated(
    container, fake_db,
):
    def explode(_):
        raise RawStorageError("raised by continuation")

    with pytest.raises(RawStorageError):
        await leaf(1).chain(explode).mark_transacting().execute(container)
    assert fake_db.rolled_back == 1
