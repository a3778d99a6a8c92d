"""
Transport-agnostic anonymous relay core.

- **identity_anonymizer.py**: Stable pseudonymous handle per source identity;
  codes are unique among active identities and freed on departure.

- **content_classifier.py**: Block-term snapshot plus link/mention patterns;
  returns CLEAN or FLAGGED(reason). Snapshots are swapped wholesale.

- **moderator_registry.py**: Cached moderator snapshot refreshed from an
  external membership provider.

- **consensus_engine.py**: Moderation queue and approval state machine with
  exactly-once resolution per submission.

- **channel_dispatcher.py**: Round-robin outbound delivery across connections.

- **blocklist_loader.py**: Publishes block-term snapshots from ``blocked.txt``.

- **relay_pipeline.py**: Entry points used by the transport layer.
"""
