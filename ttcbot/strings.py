from __future__ import annotations

from typing import Any, Dict

# ===============================================================
# Lookup
# ===============================================================
_STRINGS: Dict[str, str] = {}


def S(key: str, /, **fmt: Any) -> str:
    """Lookup + format. Unknown keys render as the key; safe on format errors."""
    template = _STRINGS.get(key, key)
    try:
        return template.format(**fmt) if fmt else template
    except (KeyError, IndexError, ValueError):
        return template


# ===============================================================
# String table
# ===============================================================

_STRINGS.update(
    {
        # ---------------- Common ----------------
        "common.guild_only": "This command can only be used in a server.",
        "common.need_manage_server": "You need **Manage Server** (or higher) permission.",
        # ---------------- Emoji cache ----------------
        "emoji_cache.busy.title": "The emoji cache is currently being updated",
        "emoji_cache.busy.desc": "Please try running the command again later.",
        "emoji_cache.rebuild.start.title": "Starting to rebuild the complete emoji cache",
        "emoji_cache.rebuild.start.desc": "This is going to take *some* time.",
        "emoji_cache.rebuild.done.title": "Finished rebuilding the emoji cache",
        "emoji_cache.rebuild.done.desc": (
            "Scanned the history again: **{messages}** messages, "
            "**{emojis}** emoji uses across **{users}** members."
        ),
        "emoji_cache.refresh.done.title": "Emoji cache refreshed",
        "emoji_cache.refresh.done.desc": (
            "**{messages}** messages and **{emojis}** emoji uses are now counted."
        ),
        "emoji_cache.failed": "Updating the emoji cache failed. Check the logs.",
        "emoji_cache.track.ok": "The leaderboard now tracks `:{name}:`.",
        "emoji_cache.track.unknown": "`:{name}:` is not an emoji of this server.",
        "emoji_cache.track.exists": "`:{name}:` is already tracked.",
        "emoji_cache.untrack.ok": "The leaderboard no longer tracks `:{name}:`.",
        "emoji_cache.untrack.missing": "`:{name}:` was not tracked.",
        "emoji_cache.tracked.list": "Tracked emojis: {names}",
        "emoji_cache.tracked.none": "No emojis are tracked. Use `/emojicache track` to add one.",
        # ---------------- Leaderboard ----------------
        "leaderboard.emoji.title": "Tracked emoji count",
        "leaderboard.emoji.desc": "Users with the highest amounts of tracked emojis in their messages.",
        "leaderboard.messages.title": "Message count",
        "leaderboard.messages.desc": "Users with the highest amounts of messages.",
        "leaderboard.percentage.title": "Tracked emoji percentage",
        "leaderboard.percentage.desc": (
            "Users with the highest ratio of tracked emojis per message. "
            "Only users with at least {min_messages} messages are accounted for."
        ),
        "leaderboard.global.title": "Global statistics",
        "leaderboard.global.desc": "Statistics among all users on the server.",
        "leaderboard.user.title": "User statistics",
        "leaderboard.user.desc": "Statistics for {user}",
        "leaderboard.field.messages": "Messages",
        "leaderboard.field.emojis": "Tracked emojis",
        "leaderboard.field.percentage": "Tracked emoji percentage",
        "leaderboard.row": "{user} - {value}",
        "leaderboard.rank": "{value} (#{rank})",
        "leaderboard.empty": "Nobody here yet.",
        "leaderboard.footer": "Page {page}/{pages}",
        "leaderboard.footer.tracked": "Page {page}/{pages} · tracking {names}",
        "leaderboard.not_owner": "Only {user} can flip through this leaderboard.",
        # ---------------- Emoji stats ----------------
        "emojistats.title": "Emoji stats",
        "emojistats.desc": "Most used server emojis by {user}",
        "emojistats.row": "{emoji} `:{name}:` - {count}",
        "emojistats.none": (
            "There are no emoji stats since the user didn't send emojis yet "
            "or the cache is too old."
        ),
        "emojistats.footer": "Refreshed {when}",
    }
)
