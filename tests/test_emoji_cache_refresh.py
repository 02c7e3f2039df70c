from __future__ import annotations

import asyncio
import random

import pytest

from ttcbot.models import emoji_cache as store_db
from ttcbot.models.emoji_cache import GUILD, Scope
from ttcbot.utils.emoji_cache import CacheBusyError, EmojiCache

GUILD_ID = 4242


async def test_scenario_full_rebuild(scenario_source):
    cache = EmojiCache(GUILD_ID, scenario_source)

    data = await cache.refresh(full_rebuild=True)

    assert data.user_message_counts == {GUILD: 4, Scope.user(1): 3, Scope.user(2): 1}
    assert data.user_emoji_counts == {(GUILD, "foo"): 2, (Scope.user(1), "foo"): 2}
    assert cache.is_running() is False


async def test_full_rebuild_is_idempotent(scenario_source):
    cache = EmojiCache(GUILD_ID, scenario_source)

    first = await cache.refresh(full_rebuild=True)
    second = await cache.refresh(full_rebuild=True)

    assert first == second
    assert store_db.load_data(GUILD_ID) == second


async def test_refresh_persists_checkpoints(scenario_source):
    cache = EmojiCache(GUILD_ID, scenario_source)
    await cache.refresh(full_rebuild=True)

    progress = store_db.load_progress(GUILD_ID)
    assert progress[10].message_id == 1003
    assert progress[20].message_id == 2002
    assert progress[20].timestamp == 2002


async def test_incremental_refresh_without_new_messages_changes_nothing(scenario_source):
    cache = EmojiCache(GUILD_ID, scenario_source)
    rebuilt = await cache.refresh(full_rebuild=True)

    resumed = await cache.refresh()

    assert resumed == rebuilt


async def test_incremental_refresh_counts_only_new_messages(scenario_source, msg):
    cache = EmojiCache(GUILD_ID, scenario_source)
    await cache.refresh(full_rebuild=True)

    scenario_source.post(msg(1004, 2, "<:foo:1>", channel_id=10))
    data = await cache.refresh()

    assert data.messages_for(GUILD) == 5
    assert data.messages_for(Scope.user(2)) == 2
    assert data.user_emoji_counts[(Scope.user(2), "foo")] == 1
    assert data.user_emoji_counts[(GUILD, "foo")] == 3
    assert store_db.load_progress(GUILD_ID)[10].message_id == 1004


def _random_history(rng: random.Random, start: int, count: int, msg, channels=(1, 2, 3)):
    messages = []
    for offset in range(count):
        author = rng.choice([1, 2, 3, 4])
        words = [rng.choice(["hi", "<:foo:7>", "<a:bar:8>", "<:baz:9>", "ok"]) for _ in range(rng.randint(0, 4))]
        messages.append(
            msg(
                start + offset,
                author,
                " ".join(words),
                channel_id=rng.choice(channels),
                bot=rng.random() < 0.1,
            )
        )
    return messages


@pytest.mark.parametrize("seed", [1, 2, 3, 4, 5])
async def test_resumed_refresh_matches_single_rebuild(seed, source_factory, msg):
    rng = random.Random(seed)
    history = _random_history(rng, 100, rng.randint(0, 30), msg)
    appended = _random_history(rng, 1000, rng.randint(0, 30), msg)
    options = dict(members=[1, 2, 3, 4], emojis=["foo", "bar", "baz"])

    resumed_source = source_factory({1: [], 2: [], 3: []}, **options)
    for m in history:
        resumed_source.post(m)
    resumed = EmojiCache(1, resumed_source)
    await resumed.refresh(full_rebuild=True)
    for m in appended:
        resumed_source.post(m)
    incremental = await resumed.refresh(full_rebuild=False)

    single_source = source_factory({1: [], 2: [], 3: []}, **options)
    for m in history + appended:
        single_source.post(m)
    rebuilt = await EmojiCache(2, single_source).refresh(full_rebuild=True)

    assert incremental == rebuilt


async def test_pruning_drops_departed_members_but_keeps_totals(scenario_source):
    cache = EmojiCache(GUILD_ID, scenario_source)
    await cache.refresh(full_rebuild=True)

    scenario_source.members = [2]
    data = await cache.refresh()

    assert Scope.user(1) not in data.user_message_counts
    assert (Scope.user(1), "foo") not in data.user_emoji_counts
    assert data.messages_for(GUILD) == 4
    assert data.user_emoji_counts[(GUILD, "foo")] == 2
    assert store_db.load_data(GUILD_ID) == data


async def test_pruning_drops_removed_emojis(scenario_source):
    cache = EmojiCache(GUILD_ID, scenario_source)
    await cache.refresh(full_rebuild=True)

    scenario_source.emojis = []
    data = await cache.refresh()

    assert data.user_emoji_counts == {}
    assert data.messages_for(Scope.user(1)) == 3


async def test_deleted_channel_loses_its_checkpoint(scenario_source):
    cache = EmojiCache(GUILD_ID, scenario_source)
    await cache.refresh(full_rebuild=True)

    del scenario_source.channels[20]
    await cache.refresh()

    assert set(store_db.load_progress(GUILD_ID)) == {10}


async def test_bot_messages_never_count(source_factory, msg):
    source = source_factory(
        {5: [msg(1, 77, "<:foo:1> <:foo:1>", channel_id=5, bot=True)]},
        members=[77],
        emojis=["foo"],
    )

    data = await EmojiCache(GUILD_ID, source).refresh(full_rebuild=True)

    assert data.user_message_counts == {}
    assert data.user_emoji_counts == {}
    # The bot message still moves the checkpoint forward.
    assert store_db.load_progress(GUILD_ID)[5].message_id == 1


async def test_concurrent_refresh_is_rejected(scenario_source):
    scenario_source.delay = 0.01
    cache = EmojiCache(GUILD_ID, scenario_source)

    results = await asyncio.gather(
        cache.refresh(full_rebuild=True),
        cache.refresh(full_rebuild=True),
        return_exceptions=True,
    )

    busy = [r for r in results if isinstance(r, CacheBusyError)]
    done = [r for r in results if not isinstance(r, BaseException)]
    assert len(busy) == 1
    assert len(done) == 1
    assert cache.is_running() is False


async def test_separate_instances_do_not_share_the_running_flag(scenario_source, source_factory):
    scenario_source.delay = 0.01
    first = EmojiCache(GUILD_ID, scenario_source)
    second = EmojiCache(GUILD_ID + 1, source_factory({}, members=[], emojis=[]))

    task = asyncio.create_task(first.refresh(full_rebuild=True))
    await asyncio.sleep(0)
    assert first.is_running() is True
    assert second.is_running() is False

    await second.refresh(full_rebuild=True)
    await task


async def test_failed_refresh_clears_flag_and_persists_nothing(scenario_source, msg):
    cache = EmojiCache(GUILD_ID, scenario_source)
    before = await cache.refresh(full_rebuild=True)
    progress_before = store_db.load_progress(GUILD_ID)

    scenario_source.post(msg(1010, 1, "<:foo:1>", channel_id=10))
    scenario_source.fail_on = {20}
    with pytest.raises(RuntimeError):
        await cache.refresh()

    assert cache.is_running() is False
    assert store_db.load_data(GUILD_ID) == before
    assert store_db.load_progress(GUILD_ID) == progress_before

    scenario_source.fail_on = set()
    after = await cache.refresh()
    assert after.messages_for(Scope.user(1)) == 4


async def test_scan_concurrency_is_bounded(source_factory, msg):
    channels = {cid: [msg(cid * 10, 1, channel_id=cid)] for cid in range(1, 7)}
    source = source_factory(channels, members=[1], emojis=[], delay=0.01)

    await EmojiCache(GUILD_ID, source, max_concurrency=2).refresh(full_rebuild=True)

    assert source.peak == 2


async def test_get_data_reads_persisted_state(scenario_source):
    writer = EmojiCache(GUILD_ID, scenario_source)
    written = await writer.refresh(full_rebuild=True)

    reader = EmojiCache(GUILD_ID, scenario_source)
    assert reader.last_refreshed is None
    assert await reader.get_data() == written


async def test_get_data_is_rejected_while_refreshing(scenario_source):
    scenario_source.delay = 0.01
    cache = EmojiCache(GUILD_ID, scenario_source)

    task = asyncio.create_task(cache.refresh(full_rebuild=True))
    await asyncio.sleep(0)
    with pytest.raises(CacheBusyError):
        await cache.get_data()
    await task

    assert (await cache.get_data()).messages_for(GUILD) == 4
    assert cache.last_refreshed is not None


async def test_get_data_returns_a_copy(scenario_source):
    cache = EmojiCache(GUILD_ID, scenario_source)
    await cache.refresh(full_rebuild=True)

    data = await cache.get_data()
    data.increase_messages(GUILD, 100)

    assert (await cache.get_data()).messages_for(GUILD) == 4
