"""
Interactive approve / reject buttons attached to review prompts.

The view only forwards the click to the relay; whether the click is
authorised or arrives too late is decided by the consensus engine, which
also edits every moderator's prompt once the submission is resolved.
"""

from __future__ import annotations

from typing import Awaitable, Callable

import discord

from anoncord.datatypes.discord_datatypes import UserID
from anoncord.datatypes.relay_datatypes import DecisionOutcome, ModeratorAction
from anoncord.util.logger import get_logger

logger = get_logger("review_ui")

DecisionHandler = Callable[[str, UserID, ModeratorAction], Awaitable[DecisionOutcome]]

OUTCOME_MESSAGES: dict[DecisionOutcome, str] = {
    DecisionOutcome.APPROVED: "✅ Approved. The message has been forwarded.",
    DecisionOutcome.REJECTED: "❌ Rejected. The message will not be forwarded.",
    DecisionOutcome.RECORDED: "📝 Rejection recorded. Other moderators can still approve.",
    DecisionOutcome.ALREADY_RESOLVED: "ℹ️ This request has already been handled.",
    DecisionOutcome.UNAUTHORIZED: "❌ You are not a moderator of the relay channel.",
}


class DecisionButton(discord.ui.Button):
    """One decision button; the custom ID carries the action and submission ID."""

    def __init__(self, action: ModeratorAction, submission_id: str, handler: DecisionHandler):
        approve = action is ModeratorAction.APPROVE
        super().__init__(
            label="✅ Approve" if approve else "❌ Reject",
            style=discord.ButtonStyle.success if approve else discord.ButtonStyle.danger,
            custom_id=f"anoncord:{action.value}:{submission_id}",
        )
        self.action = action
        self.submission_id = submission_id
        self.handler = handler

    async def callback(self, interaction: discord.Interaction):
        if interaction.user is None:
            await interaction.response.send_message("❌ Error: Unable to process this interaction.", ephemeral=True)
            return

        # Resolution may forward content and edit several prompts
        await interaction.response.defer()

        moderator_id = UserID.from_user(interaction.user)
        outcome = await self.handler(self.submission_id, moderator_id, self.action)
        logger.info(
            "[REVIEW UI] %s on submission %s by %s -> %s",
            self.action,
            self.submission_id,
            moderator_id,
            outcome,
        )
        await interaction.followup.send(OUTCOME_MESSAGES[outcome], ephemeral=True)


class ReviewDecisionView(discord.ui.View):
    """Approve / Reject buttons for one submission."""

    def __init__(self, submission_id: str, handler: DecisionHandler):
        super().__init__(timeout=None)
        self.submission_id = submission_id
        self.add_item(DecisionButton(ModeratorAction.APPROVE, submission_id, handler))
        self.add_item(DecisionButton(ModeratorAction.REJECT, submission_id, handler))
