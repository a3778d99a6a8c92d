"""
Review embed builders for moderator prompts.

These functions are UI utilities and contain no business logic.

Key Functions:
- build_prompt_embed: Creates the private review prompt for a flagged submission
- build_resolved_embed: Creates the terminal display shown once a submission is resolved
"""

from __future__ import annotations

from datetime import datetime, timezone

import discord

from anoncord.datatypes.relay_datatypes import PendingSubmission, SubmissionState

CONTENT_PREVIEW_LIMIT = 1000

RESOLVED_STYLES: dict[SubmissionState, tuple[str, discord.Color]] = {
    SubmissionState.APPROVED: ("✅ Approved and forwarded", discord.Color.green()),
    SubmissionState.REJECTED: ("❌ Rejected", discord.Color.red()),
    SubmissionState.EXPIRED: ("⌛ Expired without a decision", discord.Color.dark_grey()),
}


def preview(text: str, limit: int = CONTENT_PREVIEW_LIMIT) -> str:
    if len(text) <= limit:
        return text or "*empty*"
    return text[:limit] + "..."


def build_prompt_embed(submission: PendingSubmission) -> discord.Embed:
    """
    Build the review prompt sent to each moderator.

    Args:
        submission: The pending submission to describe

    Returns:
        discord.Embed: Prompt showing handle, reason and a content preview
    """
    embed = discord.Embed(
        title="🛡️ Relay Review Request",
        description=f"**{submission.handle}** sent content that needs approval before it is forwarded.",
        color=discord.Color.gold(),
        timestamp=datetime.now(timezone.utc),
    )
    embed.add_field(name="Reason", value=submission.reason or "flagged", inline=False)
    embed.add_field(name="Content", value=preview(submission.content.renderable_text), inline=False)
    embed.set_footer(text=f"Submission {submission.submission_id}")
    return embed


def build_resolved_embed(submission: PendingSubmission) -> discord.Embed:
    """Build the terminal display that replaces a prompt once the submission is resolved."""
    title, color = RESOLVED_STYLES.get(submission.state, ("Resolved", discord.Color.light_grey()))
    embed = discord.Embed(
        title=title,
        description=f"Content from **{submission.handle}**",
        color=color,
        timestamp=datetime.now(timezone.utc),
    )
    embed.add_field(name="Content", value=preview(submission.content.renderable_text, 300), inline=False)
    if submission.resolved_by is not None:
        embed.add_field(name="Resolved by", value=f"<@{submission.resolved_by}>", inline=False)
    embed.set_footer(text=f"Submission {submission.submission_id}")
    return embed
