"""
Chat app: direct messages, group chats and read-state synchronization.

- Conversations (direct and group) with owner/admin/member roles
- Group details, rules, discovery and join requests
- Messages with attachments, threading, reactions and soft deletion
- Read watermarks, unread counts and the client-side ReadStateTracker
- WebSocket delivery through Django Channels (consumers.py, routing.py)

Related apps:
    - authentication: users, privacy settings
    - social: blocks
    - notifications: message and join request notifications (via chat.signals)
"""
