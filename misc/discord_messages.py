from __future__ import annotations

import discord

DISCORD_MAX_MESSAGE_LEN = 1900  # keep under 2000 hard limit
FENCE = "```"


def _split_point(text: str, limit: int, floor: int = 0) -> int:
    # paragraph, then line, then word, then hard cut
    for sep in ("\n\n", "\n", " "):
        at = text.rfind(sep, 0, limit)
        if at > floor:
            return at
    return limit


def chunk_text(text: str, limit: int = DISCORD_MAX_MESSAGE_LEN) -> list[str]:
    """Split text into Discord-sized messages, keeping ``` code blocks balanced."""
    text = text or ""
    if len(text) <= limit:
        return [text]

    # room to close and reopen a fence on each side of a split
    budget = max(16, limit - 2 * (len(FENCE) + 1))
    chunks: list[str] = []
    remaining = text
    reopen = False

    while remaining:
        body = (FENCE + "\n" + remaining) if reopen else remaining
        if len(body) <= limit:
            chunks.append(body)
            break

        cut = _split_point(body, budget, floor=len(FENCE) + 1 if reopen else 0)
        chunk = body[:cut].rstrip()
        rest = body[cut:].lstrip("\n ")
        in_fence = chunk.count(FENCE) % 2 == 1
        if in_fence:
            chunk += "\n" + FENCE
        if chunk.strip() and chunk.strip() != FENCE + "\n" + FENCE:
            chunks.append(chunk)
        remaining = rest
        reopen = in_fence

    return chunks


async def send_chunked(channel: discord.abc.Messageable, text: str) -> None:
    for part in chunk_text(text, DISCORD_MAX_MESSAGE_LEN):
        await channel.send(part)
