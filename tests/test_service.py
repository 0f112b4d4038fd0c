import asyncio

import pytest

from firewall_defense.errors import InvalidInput, InvalidInterval, PlayerNotFound, StorageUnavailable
from firewall_defense.leaderboard.flush import MS_PER_MINUTE
from firewall_defense.leaderboard.notifier import RankChangeNotifier
from firewall_defense.leaderboard.service import LeaderboardService
from firewall_defense.storage import keys

from conftest import CHANNEL, BrokenBroadcaster


def updates(broadcaster):
    return broadcaster.messages("LEADERBOARD_UPDATE")


def board(msg):
    return [(row["uuid"], row["score"]) for row in msg["leaderboard"]]


async def test_walkthrough_submit_flush_submit(service, broadcaster, enroll, clock):
    await enroll("A")

    first = await service.submit_score("A", 100)
    assert first.total_score == 100
    assert first.flushed  # never flushed before
    assert board(updates(broadcaster)[-1]) == [("A", 100)]

    clock.advance(1000)
    second = await service.submit_score("A", 50)
    assert second.total_score == 150
    assert not second.flushed
    # Sole entrant, same order, new score: still a change.
    assert second.broadcast
    assert board(updates(broadcaster)[-1]) == [("A", 150)]

    await service.force_flush()
    assert (await service.get_top_k())["leaderboard"] == []
    flushed_msg = updates(broadcaster)[-1]
    assert flushed_msg["flushed"] is True
    assert flushed_msg["leaderboard"] == []

    third = await service.submit_score("A", 20)
    assert third.total_score == 20
    assert len(updates(broadcaster)) == 4


async def test_due_flush_applies_increment_to_zero_baseline(service, store, enroll, clock):
    await enroll("A", "B")
    await store.set_value(keys.LAST_FLUSH, clock.now)
    await service.submit_score("A", 500)
    await service.submit_score("B", 300)

    clock.advance(60 * MS_PER_MINUTE)
    result = await service.submit_score("A", 7)

    assert result.flushed
    assert result.total_score == 7
    top = (await service.get_top_k())["leaderboard"]
    assert [(r["uuid"], r["score"]) for r in top] == [("A", 7)]
    assert (await store.get_player("B"))[keys.SCORE_FIELD] == "0"


async def test_flush_broadcast_marks_reset(service, broadcaster, enroll, clock, fresh_epoch):
    await enroll("A")
    await fresh_epoch()
    await service.submit_score("A", 10)
    clock.advance(60 * MS_PER_MINUTE)

    await service.submit_score("A", 3)

    msg = updates(broadcaster)[-1]
    assert msg["flushed"] is True
    assert board(msg) == [("A", 3)]
    assert msg["lastFlush"] == clock.now
    assert msg["flushIntervalMinutes"] == 60


async def test_broadcast_only_when_top3_changes(service, broadcaster, enroll, fresh_epoch):
    await enroll("a", "b", "c", "d")
    await fresh_epoch()
    for pid, score in (("a", 300), ("b", 200), ("c", 100), ("d", 50)):
        await service.submit_score(pid, score)
    sent = len(updates(broadcaster))

    quiet = await service.submit_score("d", 10)
    assert quiet.total_score == 60
    assert not quiet.broadcast
    assert len(updates(broadcaster)) == sent

    loud = await service.submit_score("d", 100)
    assert loud.broadcast
    assert len(updates(broadcaster)) == sent + 1
    top = (await service.get_top_k(3))["leaderboard"]
    assert board(updates(broadcaster)[-1]) == [(r["uuid"], r["score"]) for r in top]
    assert board(updates(broadcaster)[-1]) == [("a", 300), ("b", 200), ("d", 160)]


async def test_reorder_with_same_scores_counts_as_change(service, broadcaster, enroll, fresh_epoch):
    await enroll("a", "b")
    await fresh_epoch()
    await service.submit_score("a", 100)
    await service.submit_score("b", 50)
    sent = len(updates(broadcaster))

    result = await service.submit_score("b", 60)

    assert result.broadcast
    assert len(updates(broadcaster)) == sent + 1
    assert board(updates(broadcaster)[-1]) == [("b", 110), ("a", 100)]


async def test_unknown_player_is_rejected_before_any_mutation(service, store, clock):
    with pytest.raises(PlayerNotFound):
        await service.submit_score("ghost", 10)
    # The lazy flush did not run either.
    assert await store.get_value(keys.LAST_FLUSH) is None


@pytest.mark.parametrize("delta", [1.5, "10", True, None])
async def test_bad_delta_does_not_trigger_due_flush(service, store, enroll, clock, fresh_epoch, delta):
    await enroll("A", "B")
    await fresh_epoch()
    await service.submit_score("B", 500)
    stamped = await store.get_value(keys.LAST_FLUSH)
    clock.advance(61 * MS_PER_MINUTE)

    with pytest.raises(InvalidInput):
        await service.submit_score("A", delta)

    assert await store.rank_range() == [("B", 500.0)]
    assert (await store.get_player("B"))[keys.SCORE_FIELD] == "500"
    assert await store.get_value(keys.LAST_FLUSH) == stamped


async def test_broadcast_failure_does_not_fail_submission(store, players, ledger, scheduler, clock, enroll, caplog):
    notifier = RankChangeNotifier(players, BrokenBroadcaster(), CHANNEL)
    svc = LeaderboardService(ledger, scheduler, notifier, players, clock=clock)
    await enroll("A")

    result = await svc.submit_score("A", 40)

    assert result.total_score == 40
    assert not result.broadcast
    assert (await ledger.top_k(1))[0].score == 40
    assert "broadcast of LEADERBOARD_UPDATE failed" in caplog.text


async def test_storage_failure_during_increment_propagates(service, store, enroll, fresh_epoch):
    await enroll("A")
    await fresh_epoch()
    store.failing.add("apply_score_delta")
    with pytest.raises(StorageUnavailable):
        await service.submit_score("A", 10)


async def test_storage_failure_during_lazy_flush_propagates(service, store, enroll):
    await enroll("A")
    store.failing.add("rank_range")
    # The increment never ran either.
    with pytest.raises(StorageUnavailable):
        await service.submit_score("A", 10)
    store.failing.clear()
    assert await service.ledger.all_entries() == []


async def test_failed_post_increment_read_keeps_score(service, store, broadcaster, enroll, fresh_epoch):
    await enroll("A")
    await fresh_epoch()

    original = store.rank_range
    calls = {"n": 0}

    async def flaky(start=0, stop=-1):
        calls["n"] += 1
        if calls["n"] == 2:
            raise StorageUnavailable("rank_range failed")
        return await original(start, stop)

    store.rank_range = flaky
    result = await service.submit_score("A", 10)

    assert result.total_score == 10
    assert not result.broadcast
    assert updates(broadcaster) == []


async def test_concurrent_submissions_lose_no_updates(service, enroll, fresh_epoch):
    await enroll("A")
    await fresh_epoch()
    await asyncio.gather(*(service.submit_score("A", 5) for _ in range(20)))
    assert (await service.get_top_k(1))["leaderboard"][0]["score"] == 100


async def test_concurrent_submissions_across_flush_boundary(service, enroll):
    await enroll("A", "B")
    results = await asyncio.gather(service.submit_score("A", 5), service.submit_score("B", 9))
    assert sorted(r.total_score for r in results) == [5, 9]
    scores = {r["uuid"]: r["score"] for r in (await service.get_top_k())["leaderboard"]}
    assert scores == {"A": 5, "B": 9}


async def test_force_flush_always_broadcasts(service, broadcaster):
    assert await service.force_flush() == 0
    assert await service.force_flush() == 0
    msgs = updates(broadcaster)
    assert len(msgs) == 2
    assert all(m["flushed"] is True for m in msgs)


async def test_set_flush_interval(service):
    state = await service.set_flush_interval(15)
    assert state.interval_minutes == 15
    assert (await service.get_flush_state()).interval_minutes == 15
    with pytest.raises(InvalidInterval):
        await service.set_flush_interval(0)
    assert (await service.get_flush_state()).interval_minutes == 15


async def test_get_top_k_includes_flush_state(service, enroll, clock, fresh_epoch):
    await enroll("A")
    await fresh_epoch()
    await service.submit_score("A", 1)
    view = await service.get_top_k()
    assert view["lastFlush"] == clock.now
    assert view["flushIntervalMinutes"] == 60
    assert view["leaderboard"][0]["tagline"] == "Your tagline here!"


async def test_remove_player_notifies(service, broadcaster, enroll, fresh_epoch, store):
    await enroll("A", "B")
    await fresh_epoch()
    await service.submit_score("A", 10)
    await service.submit_score("B", 5)

    await service.remove_player("A")

    assert await store.get_player("A") is None
    assert broadcaster.messages("PLAYER_DELETED")[-1] == {"type": "PLAYER_DELETED", "uuid": "A"}
    assert board(updates(broadcaster)[-1]) == [("B", 5)]
    with pytest.raises(PlayerNotFound):
        await service.remove_player("A")
