"""Realtime conversations: store, presence, rooms, message routing and receipts."""
