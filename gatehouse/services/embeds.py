"""
gatehouse.services.embeds — Discord embed builders for decision DMs
====================================================================

All embed construction lives here so the notification service only needs
to supply data — no layout concerns.
"""

from __future__ import annotations

from datetime import UTC, datetime

import discord

from gatehouse.constants import APPROVED_COLOR, DENIED_COLOR, REVISION_COLOR


def build_approved_embed(community_name: str) -> discord.Embed:
    """Build the "application approved" DM."""
    return discord.Embed(
        title="\u2705 Application Approved!",
        description=(
            f"Congratulations! Your application to **{community_name}** has "
            "been approved. You now have access to the server."
        ),
        color=discord.Color(APPROVED_COLOR),
        timestamp=datetime.now(UTC),
    )


def build_denied_embed(community_name: str, reason: str | None = None) -> discord.Embed:
    """Build the "application denied" DM, quoting *reason* when given."""
    if reason:
        description = (
            f"Unfortunately, your application to **{community_name}** was not "
            f"approved.\n\n**Reason:** {reason}"
        )
    else:
        description = (
            f"Unfortunately, your application to **{community_name}** was not "
            "approved at this time."
        )
    return discord.Embed(
        title="\u274c Application Denied",
        description=description,
        color=discord.Color(DENIED_COLOR),
        timestamp=datetime.now(UTC),
    )


def build_revision_embed(
    community_name: str,
    question_texts: list[str],
    reason: str | None = None,
) -> discord.Embed:
    """Build the "revision requested" DM listing the flagged questions."""
    embed = discord.Embed(
        title="\u270f\ufe0f Revision Requested",
        description=(
            f"An admin reviewed your application to **{community_name}** and "
            "would like you to update some of your answers. Sign in to the "
            "application portal to resubmit."
        ),
        color=discord.Color(REVISION_COLOR),
        timestamp=datetime.now(UTC),
    )
    if question_texts:
        listing = "\n".join(f"\u2022 {text}" for text in question_texts)
        embed.add_field(name="Questions to revise", value=listing[:1024], inline=False)
    if reason:
        embed.add_field(name="Reason", value=reason[:1024], inline=False)
    return embed
