"""
Discord UI components for moderator review prompts.

- **review_embed_helper.py**: Embed builders for open and resolved prompts.
- **review_ui.py**: Approve / Reject button view forwarding clicks to the relay.
"""
